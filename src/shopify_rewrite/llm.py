from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from .errors import TransportError


log = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    api_key: str = ""
    model: str = "gpt-4o"
    base_url: str = "https://api.openai.com"
    timeout: int = 60
    temperature: Optional[float] = None

    @property
    def chat_url(self) -> str:
        return self.base_url.rstrip("/") + "/v1/chat/completions"

    @classmethod
    def from_settings(cls, s: Dict) -> "LLMConfig":
        key_env = s.get("llm_api_key_env") or "OPENAI_API_KEY"
        return cls(
            api_key=os.environ.get(key_env, "").strip(),
            model=(s.get("llm_model") or "gpt-4o").strip(),
            base_url=(s.get("llm_base_url") or "https://api.openai.com").strip(),
            timeout=int(s.get("llm_timeout") or 60),
        )


def build_llm_session(cfg: LLMConfig) -> requests.Session:
    s = requests.Session()
    s.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
    if cfg.api_key:
        s.headers["Authorization"] = f"Bearer {cfg.api_key}"
    return s


class ChatClient:
    """OpenAI-compatible chat-completion client.

    Constructed once and shared; it holds no per-request state.
    """

    def __init__(self, cfg: LLMConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or build_llm_session(cfg)

    def messages(self, prompt: str) -> List[Dict]:
        return [{"role": "user", "content": prompt}]

    def complete(self, prompt: str) -> str:
        """Send ``prompt`` once and return the first choice's text, or ``""``."""
        payload: Dict[str, object] = {"model": self.cfg.model, "messages": self.messages(prompt)}
        if self.cfg.temperature is not None:
            payload["temperature"] = self.cfg.temperature
        try:
            resp = self.session.post(self.cfg.chat_url, data=json.dumps(payload), timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise TransportError(f"LLM request failed: {e}") from e
        if not resp.ok:
            raise TransportError(f"LLM HTTP {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code)
        try:
            parsed = resp.json()
        except ValueError as e:
            raise TransportError(f"Non-JSON from LLM: {resp.text[:200]}") from e
        choices = (parsed.get("choices") if isinstance(parsed, dict) else None) or []
        if not choices:
            log.warning("LLM returned no choices (model=%s)", self.cfg.model)
            return ""
        return ((choices[0].get("message") or {}).get("content") or "").strip()
