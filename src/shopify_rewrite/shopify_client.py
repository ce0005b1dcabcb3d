from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests

from .errors import FetchError, TransportError


log = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-10"


@dataclass
class ShopifyConfig:
    store: str
    token: str
    api_version: str = DEFAULT_API_VERSION
    timeout: int = 30

    @property
    def base_url(self) -> str:
        return f"https://{self.store}/admin/api/{self.api_version}"

    @property
    def graphql_url(self) -> str:
        return f"{self.base_url}/graphql.json"


def normalize_store(store: str) -> str:
    store = (store or "").strip()
    if store.startswith("https://"):
        store = store[len("https://") :]
    elif store.startswith("http://"):
        store = store[len("http://") :]
    return store.rstrip("/")


def build_session(cfg: ShopifyConfig) -> requests.Session:
    s = requests.Session()
    s.headers.update(
        {
            "X-Shopify-Access-Token": cfg.token,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "shopify-rewrite/1.0",
        }
    )
    return s


def graphql(session: requests.Session, cfg: ShopifyConfig, query: str, variables: Optional[Dict] = None) -> Dict:
    """POST one GraphQL document to the Admin API and return the decoded body.

    A single attempt is made. Network failures, non-2xx responses, non-JSON
    bodies and top-level GraphQL ``errors`` all raise :class:`TransportError`.
    Mutation ``userErrors`` are left in the payload for the caller to inspect.
    """
    payload = {"query": query, "variables": variables or {}}
    log.debug("graphql POST %s variables=%s", cfg.graphql_url, list((variables or {}).keys()))
    try:
        resp = session.post(cfg.graphql_url, data=json.dumps(payload), timeout=cfg.timeout)
    except requests.RequestException as e:
        raise TransportError(f"Shopify request failed: {e}") from e
    if not resp.ok:
        raise TransportError(f"Shopify HTTP {resp.status_code}: {resp.text[:200]}", status_code=resp.status_code)
    try:
        data = resp.json()
    except ValueError as e:
        raise TransportError(f"Non-JSON from Shopify: {resp.text[:200]}", status_code=resp.status_code) from e
    if not isinstance(data, dict):
        raise TransportError(f"Unexpected Shopify response: {str(data)[:200]}", status_code=resp.status_code)
    if data.get("errors"):
        raise TransportError(f"GraphQL error: {data['errors']}", status_code=resp.status_code)
    return data


PRODUCT_QUERY = (
    "query($id:ID!){"
    " product(id:$id){ id title descriptionHtml }"
    "}"
)

PRODUCTS_PAGE_QUERY = (
    "query($cursor:String){"
    " products(first:100, after:$cursor){"
    "  pageInfo{ hasNextPage }"
    "  edges{ cursor node{"
    "   id title descriptionHtml"
    "   collections(first:5){ edges{ node{ id title } } }"
    "   images(first:1){ edges{ node{ url } } }"
    "   variants(first:1){ edges{ node{ fulfillmentService{ handle } } } }"
    "  } }"
    " }"
    "}"
)

PRODUCT_UPDATE_MUTATION = (
    "mutation productUpdate($input:ProductInput!){"
    " productUpdate(input:$input){"
    "  product{ id title descriptionHtml seo{ title description } }"
    "  userErrors{ field message }"
    " }"
    "}"
)

METAFIELDS_SET_MUTATION = (
    "mutation metafieldsSet($metafields:[MetafieldsSetInput!]!){"
    " metafieldsSet(metafields:$metafields){"
    "  metafields{ id namespace key value }"
    "  userErrors{ field message }"
    " }"
    "}"
)

SHOP_QUERY = "query{ shop{ name myshopifyDomain } }"


def fetch_product(session: requests.Session, cfg: ShopifyConfig, product_id: str) -> Dict:
    data = graphql(session, cfg, PRODUCT_QUERY, {"id": product_id})
    product = (data.get("data") or {}).get("product")
    if not product:
        raise FetchError(f"product not found: {product_id}")
    return product


def fetch_products_page(session: requests.Session, cfg: ShopifyConfig, cursor: Optional[str]) -> Dict:
    """Return the raw ``products`` connection for one page."""
    data = graphql(session, cfg, PRODUCTS_PAGE_QUERY, {"cursor": cursor})
    products = (data.get("data") or {}).get("products")
    if not products:
        raise FetchError("Shopify response has no products collection")
    return products


def product_update(session: requests.Session, cfg: ShopifyConfig, product_input: Dict) -> Dict:
    data = graphql(session, cfg, PRODUCT_UPDATE_MUTATION, {"input": product_input})
    payload = (data.get("data") or {}).get("productUpdate")
    if payload is None:
        raise FetchError("productUpdate returned no payload")
    return payload


def metafields_set(session: requests.Session, cfg: ShopifyConfig, metafields: List[Dict]) -> Dict:
    data = graphql(session, cfg, METAFIELDS_SET_MUTATION, {"metafields": metafields})
    payload = (data.get("data") or {}).get("metafieldsSet")
    if payload is None:
        raise FetchError("metafieldsSet returned no payload")
    return payload


def get_shop_info(session: requests.Session, cfg: ShopifyConfig) -> Dict:
    """Fetch basic shop info to verify credentials and store identity."""
    data = graphql(session, cfg, SHOP_QUERY)
    return (data.get("data") or {}).get("shop") or {}


def gid_to_int(gid: str) -> int:
    try:
        return int(gid.rsplit("/", 1)[-1])
    except (ValueError, AttributeError):
        return int(gid)


def product_gid(product_id: int | str) -> str:
    text = str(product_id)
    if text.startswith("gid://"):
        return text
    return f"gid://shopify/Product/{text}"
