from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from . import shopify_client as sc
from .errors import MutationError
from .parse import GeneratedContent


log = logging.getLogger(__name__)

SPEC_NAMESPACE = "spec"
BREADCRUMB_NAMESPACE = "breadcrumbs"
MULTI_LINE = "multi_line_text_field"
SINGLE_LINE = "single_line_text_field"


@dataclass
class WriteOptions:
    dropship_namespace: str = "dropshipping"
    dropship_key: str = "aliexpress"
    dropship_value: str = "海外発送"
    template_suffix: bool = True

    @classmethod
    def from_settings(cls, s: Dict) -> "WriteOptions":
        return cls(
            dropship_namespace=s.get("dropship_namespace", "dropshipping"),
            dropship_key=s.get("dropship_key", "aliexpress"),
            dropship_value=s.get("dropship_value", "海外発送"),
            template_suffix=bool(s.get("apply_template_suffix", True)),
        )


def build_metafield_entries(
    product_id: str,
    content: GeneratedContent,
    cat_big: str = "",
    cat_mid: str = "",
    options: Optional[WriteOptions] = None,
) -> List[Dict]:
    options = options or WriteOptions()
    entries = [
        {"namespace": SPEC_NAMESPACE, "key": f"details{n:02d}", "type": MULTI_LINE, "value": value}
        for n, value in content.specs.slots().items()
    ]
    entries += [
        {"namespace": options.dropship_namespace, "key": options.dropship_key, "type": SINGLE_LINE, "value": options.dropship_value},
        {"namespace": BREADCRUMB_NAMESPACE, "key": "cat_big", "type": SINGLE_LINE, "value": cat_big},
        {"namespace": BREADCRUMB_NAMESPACE, "key": "cat_mid", "type": SINGLE_LINE, "value": cat_mid},
    ]
    return [
        {**e, "ownerId": product_id, "value": (e["value"] or "").strip()}
        for e in entries
        if (e["value"] or "").strip()
    ]


def product_input(product_id: str, content: GeneratedContent, template_suffix: Optional[str] = None) -> Dict:
    data: Dict[str, object] = {
        "id": product_id,
        "title": content.title,
        "descriptionHtml": content.body_html,
        "seo": {"title": content.seo_title, "description": content.seo_description},
    }
    if template_suffix:
        data["templateSuffix"] = template_suffix
    return data


def update_product(
    session: requests.Session,
    cfg: sc.ShopifyConfig,
    product_id: str,
    content: GeneratedContent,
    template_suffix: Optional[str] = None,
) -> Dict:
    payload = sc.product_update(session, cfg, product_input(product_id, content, template_suffix))
    errors = payload.get("userErrors") or []
    if errors:
        raise MutationError("productUpdate", errors)
    return payload


def set_metafields(session: requests.Session, cfg: sc.ShopifyConfig, entries: List[Dict]) -> Dict:
    if not entries:
        return {"metafields": [], "userErrors": []}
    payload = sc.metafields_set(session, cfg, entries)
    errors = payload.get("userErrors") or []
    if errors:
        raise MutationError("metafieldsSet", errors)
    return payload
