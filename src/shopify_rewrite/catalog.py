from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from . import shopify_client as sc
from .errors import FetchError, TransportError


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collection:
    id: str
    title: str


@dataclass
class Product:
    id: str
    title: str
    description_html: str = ""
    collections: List[Collection] = field(default_factory=list)
    image_url: Optional[str] = None
    fulfillment_service: Optional[str] = None

    @property
    def numeric_id(self) -> int:
        return sc.gid_to_int(self.id)

    def admin_url(self, store: str) -> str:
        shop = store.split(".", 1)[0]
        return f"https://admin.shopify.com/store/{shop}/products/{self.numeric_id}"

    def collection_titles(self) -> List[str]:
        return [c.title for c in self.collections]


def _edges(conn: Optional[Dict]) -> List[Dict]:
    return [e.get("node") or {} for e in ((conn or {}).get("edges") or [])]


def product_from_node(node: Dict) -> Product:
    collections = [
        Collection(id=c.get("id") or "", title=c.get("title") or "")
        for c in _edges(node.get("collections"))
        if c.get("title")
    ]
    images = _edges(node.get("images"))
    image_url = images[0].get("url") if images else None
    handle = None
    for v in _edges(node.get("variants")):
        handle = (v.get("fulfillmentService") or {}).get("handle")
        if handle:
            break
    return Product(
        id=node.get("id") or "",
        title=node.get("title") or "",
        description_html=node.get("descriptionHtml") or "",
        collections=collections,
        image_url=image_url,
        fulfillment_service=handle,
    )


def read_catalog(
    session: requests.Session,
    cfg: sc.ShopifyConfig,
    fulfillment_service: Optional[str] = None,
) -> List[Product]:
    """Read every product page and keep those fulfilled by ``fulfillment_service``.

    Pages are walked with the last edge's cursor while Shopify reports
    ``hasNextPage``. The fulfillment filter runs per item after fetch; an
    empty ``fulfillment_service`` keeps every product. Any page failure aborts
    the whole read with :class:`FetchError`.
    """
    cursor: Optional[str] = None
    pages = 0
    results: List[Product] = []
    while True:
        try:
            products = sc.fetch_products_page(session, cfg, cursor)
        except TransportError as e:
            raise FetchError(f"catalog page {pages + 1} failed: {e}") from e
        pages += 1
        edges = products.get("edges") or []
        for e in edges:
            node = e.get("node") or {}
            if not node.get("id"):
                continue
            product = product_from_node(node)
            if fulfillment_service and product.fulfillment_service != fulfillment_service:
                continue
            results.append(product)
        if not (products.get("pageInfo") or {}).get("hasNextPage"):
            break
        if not edges:
            raise FetchError(f"catalog page {pages} reports more pages but has no edges")
        cursor = edges[-1].get("cursor")
    log.info("read_catalog: pages=%s kept=%s filter=%s", pages, len(results), fulfillment_service or "-")
    return results


def collection_options(products: List[Product]) -> List[str]:
    return sorted({c.title for p in products for c in p.collections if c.title})
