"""Sequential bulk rewrite: fetch, prompt, generate, parse, write.

Each product runs its whole pipeline before the next one starts. A failure
at any stage ends that product only; the batch always completes and reports
how many products made it through both writes.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from . import shopify_client as sc
from . import writer
from .dispatch import RewriteRequest
from .errors import RewriterError
from .llm import ChatClient
from .parse import GeneratedContent, parse_generated_content
from .prompts import DEFAULT_SEO_SUFFIX, build_prompt


log = logging.getLogger(__name__)

COUNTED = "counted"
FAILED = "failed"


@dataclass
class ItemOutcome:
    product_id: str
    stage: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.stage == COUNTED


@dataclass
class BatchResult:
    outcomes: List[ItemOutcome] = field(default_factory=list)

    @property
    def count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]


def generate_content(
    llm: ChatClient,
    title: str,
    description: str,
    template: str = "aliexpress",
    cat_big: str = "",
    cat_mid: str = "",
    seo_suffix: str = DEFAULT_SEO_SUFFIX,
) -> GeneratedContent:
    prompt = build_prompt(title, description, template, cat_big, cat_mid, seo_suffix)
    return parse_generated_content(llm.complete(prompt))


def rewrite_single(llm: ChatClient, title: str, description: str, template: str = "aliexpress", seo_suffix: str = DEFAULT_SEO_SUFFIX) -> str:
    """Return the raw model text for one product (the ``/api/rewrite`` contract)."""
    return llm.complete(build_prompt(title, description, template, seo_suffix=seo_suffix))


def bulk_rewrite(
    session: requests.Session,
    cfg: sc.ShopifyConfig,
    llm: ChatClient,
    request: RewriteRequest,
    options: Optional[writer.WriteOptions] = None,
    seo_suffix: str = DEFAULT_SEO_SUFFIX,
) -> BatchResult:
    options = options or writer.WriteOptions()
    suffix = request.template if options.template_suffix else None
    result = BatchResult()
    for product_id in request.ids:
        stage = "selected"
        try:
            product = sc.fetch_product(session, cfg, product_id)
            stage = "fetched"
            prompt = build_prompt(
                product.get("title") or "",
                product.get("descriptionHtml") or "",
                request.template,
                request.cat_big,
                request.cat_mid,
                seo_suffix,
            )
            stage = "prompted"
            raw = llm.complete(prompt)
            stage = "generated"
            content = parse_generated_content(raw)
            stage = "parsed"
            writer.update_product(session, cfg, product_id, content, template_suffix=suffix)
            stage = "product-updated"
            entries = writer.build_metafield_entries(product_id, content, request.cat_big, request.cat_mid, options)
            writer.set_metafields(session, cfg, entries)
            stage = "metafields-updated"
        except RewriterError as e:
            log.error("product %s failed after %s: %s", product_id, stage, e)
            result.outcomes.append(ItemOutcome(product_id, FAILED, f"{stage}: {e}"))
            continue
        except Exception as e:
            log.exception("product %s failed after %s", product_id, stage)
            result.outcomes.append(ItemOutcome(product_id, FAILED, f"{stage}: {e}"))
            continue
        result.outcomes.append(ItemOutcome(product_id, COUNTED))
    log.info("bulk_rewrite: template=%s selected=%s updated=%s", request.template, len(request.ids), result.count)
    return result
