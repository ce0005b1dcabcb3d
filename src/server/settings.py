from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Dict


log = logging.getLogger(__name__)

SETTINGS_PATH: Path | None = None


def init_settings(path: Path) -> None:
    global SETTINGS_PATH
    SETTINGS_PATH = path
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        save_settings(default_settings())


def default_settings() -> Dict:
    return {
        "shopify_store": "",
        "shopify_api_version": "2024-10",
        "shopify_access_token": "",
        # Catalog listing
        "fulfillment_service": "dsers-fulfillment-service",
        "page_size": 50,
        # Text generation (OpenAI-compatible)
        "llm_base_url": "https://api.openai.com",
        "llm_model": "gpt-4o",
        "llm_api_key_env": "OPENAI_API_KEY",
        "llm_timeout": 60,
        "seo_suffix": "｜誉PRINTING",
        # Writes
        "dropship_namespace": "dropshipping",
        "dropship_key": "aliexpress",
        "dropship_value": "海外発送",
        "apply_template_suffix": True,
    }


def get_settings() -> Dict:
    assert SETTINGS_PATH is not None
    base = default_settings()
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.warning("settings unreadable at %s, using defaults: %s", SETTINGS_PATH, e)
        return base
    base.update(data or {})
    return base


def save_settings(data: Dict) -> None:
    assert SETTINGS_PATH is not None
    SETTINGS_PATH.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
