"""Listing-side helpers: filtering, pagination and the selection set.

None of these mutate the catalog snapshot they are given.
"""
from __future__ import annotations
import json
import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Set

from .catalog import Product


DEFAULT_PAGE_SIZE = 50
_LATIN_RE = re.compile(r"[A-Za-z]")


@dataclass
class PicklistFilter:
    keyword: str = ""
    latin_only: bool = False
    collection: str = ""

    def matches(self, product: Product) -> bool:
        keyword = self.keyword.strip().lower()
        if keyword and keyword not in product.title.lower():
            return False
        if self.latin_only and not _LATIN_RE.search(product.title):
            return False
        if self.collection and self.collection not in product.collection_titles():
            return False
        return True


def filter_products(products: Sequence[Product], flt: PicklistFilter) -> List[Product]:
    return [p for p in products if flt.matches(p)]


@dataclass
class Page:
    items: List[Product]
    number: int
    total_pages: int
    total: int

    @property
    def has_prev(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def ids(self) -> List[str]:
        return [p.id for p in self.items]


def paginate(items: Sequence[Product], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    page_size = max(int(page_size), 1)
    total_pages = max(math.ceil(len(items) / page_size), 1)
    number = min(max(int(page), 1), total_pages)
    start = (number - 1) * page_size
    return Page(items=list(items[start : start + page_size]), number=number, total_pages=total_pages, total=len(items))


class Selection:
    """Set of selected product ids."""

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: Set[str] = {i for i in ids if i}

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> List[str]:
        return sorted(self._ids)

    def toggle(self, product_id: str) -> None:
        if product_id in self._ids:
            self._ids.discard(product_id)
        else:
            self._ids.add(product_id)

    def page_selected(self, visible_ids: Sequence[str]) -> bool:
        return bool(visible_ids) and all(i in self._ids for i in visible_ids)

    def toggle_page(self, visible_ids: Sequence[str]) -> None:
        if self.page_selected(visible_ids):
            self._ids.difference_update(visible_ids)
        else:
            self._ids.update(visible_ids)

    def sync_page(self, visible_ids: Sequence[str], checked_ids: Iterable[str]) -> None:
        # checkbox forms only post the checked boxes of the visible page
        visible = set(visible_ids)
        self._ids.difference_update(visible)
        self._ids.update(i for i in checked_ids if i in visible)

    def to_json(self) -> str:
        return json.dumps(self.ids)

    @classmethod
    def from_json(cls, text: str) -> "Selection":
        try:
            data = json.loads(text or "[]")
        except ValueError:
            return cls()
        if not isinstance(data, list):
            return cls()
        return cls(str(i) for i in data)


def suggest(options: Sequence[str], text: str, limit: int = 20) -> List[str]:
    needle = (text or "").lower()
    return [o for o in options if needle in o.lower()][:limit]
