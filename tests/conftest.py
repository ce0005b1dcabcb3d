from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# keep the server's settings file out of the working tree
os.environ.setdefault("REWRITER_SETTINGS", str(Path(tempfile.mkdtemp()) / "settings.json"))

from shopify_rewrite import shopify_client as sc


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload, ensure_ascii=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        return self._payload


def product_node(
    gid: str,
    title: str,
    collections: Optional[List[str]] = None,
    fulfillment: Optional[str] = "dsers-fulfillment-service",
    image: Optional[str] = None,
) -> Dict:
    return {
        "id": gid,
        "title": title,
        "descriptionHtml": f"<p>{title}</p>",
        "collections": {"edges": [{"node": {"id": f"gid://shopify/Collection/{i}", "title": c}} for i, c in enumerate(collections or [])]},
        "images": {"edges": [{"node": {"url": image}}] if image else []},
        "variants": {"edges": [{"node": {"fulfillmentService": {"handle": fulfillment} if fulfillment else None}}]},
    }


def products_page(nodes: List[Dict], has_next: bool) -> Dict:
    return {
        "pageInfo": {"hasNextPage": has_next},
        "edges": [{"cursor": f"cursor-{n['id'].rsplit('/', 1)[-1]}", "node": n} for n in nodes],
    }


class FakeShopify:
    """Requests-like session that answers the Admin GraphQL documents we send."""

    def __init__(self):
        self.products: Dict[str, Dict] = {}
        self.pages: List[Any] = []
        self.calls: List[tuple] = []
        self.update_errors: Dict[str, List[Dict]] = {}
        self.metafield_errors: Dict[str, List[Dict]] = {}
        self.fail_status: Optional[int] = None

    def add_product(self, gid: str, title: str, description: str = "<p>old</p>") -> None:
        self.products[gid] = {"id": gid, "title": title, "descriptionHtml": description}

    def operations(self, name: str) -> List[Dict]:
        return [v for op, v in self.calls if op == name]

    def post(self, url, data=None, timeout=None):
        body = json.loads(data)
        query = body["query"]
        variables = body.get("variables") or {}
        if self.fail_status:
            self.calls.append(("error", variables))
            return FakeResponse({"errors": "boom"}, status_code=self.fail_status)
        if "metafieldsSet" in query:
            self.calls.append(("metafieldsSet", variables))
            owner = variables["metafields"][0]["ownerId"]
            errors = self.metafield_errors.get(owner, [])
            return FakeResponse({"data": {"metafieldsSet": {"metafields": [] if errors else variables["metafields"], "userErrors": errors}}})
        if "productUpdate" in query:
            self.calls.append(("productUpdate", variables))
            pid = variables["input"]["id"]
            errors = self.update_errors.get(pid, [])
            return FakeResponse({"data": {"productUpdate": {"product": None if errors else {"id": pid}, "userErrors": errors}}})
        if "products(" in query:
            index = len(self.operations("products"))
            self.calls.append(("products", variables))
            page = self.pages[index]
            return FakeResponse({"data": {"products": page}})
        if "product(" in query:
            self.calls.append(("product", variables))
            return FakeResponse({"data": {"product": self.products.get(variables["id"])}})
        if "shop" in query:
            self.calls.append(("shop", variables))
            return FakeResponse({"data": {"shop": {"name": "Test Shop", "myshopifyDomain": "test.myshopify.com"}}})
        raise AssertionError(f"Unexpected query: {query}")


class FakeLLM:
    """Stands in for ChatClient; ``reply`` is fixed text or a function of the prompt."""

    def __init__(self, reply: Callable[[str], str] | str = ""):
        self.reply = reply
        self.prompts: List[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if callable(self.reply):
            return self.reply(prompt)
        return self.reply


def llm_json(title: str, body: str = "<p>新しい</p>", **specs: str) -> str:
    return json.dumps(
        {
            "title": title,
            "bodyHtml": body,
            "seoTitle": f"{title}｜誉PRINTING",
            "seoDescription": "説明",
            "specs": {k: specs.get(k, "") for k in ("details1", "details2", "details3", "details4")},
        },
        ensure_ascii=False,
    )


@pytest.fixture
def shopify_cfg() -> sc.ShopifyConfig:
    return sc.ShopifyConfig(store="test.myshopify.com", token="shpat_test")


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()
