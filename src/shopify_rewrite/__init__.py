"""
Shopify product rewriter library.

This package provides modular building blocks for:
- Reading the Shopify catalog (paginated GraphQL)
- Filtering, paginating and selecting products for a batch
- Prompting an OpenAI-compatible chat model for Japanese product copy
- Parsing the model's JSON and normalising the disclaimer block
- Writing product fields and metafields back to Shopify

Public API:
- catalog.read_catalog, catalog.collection_options
- picklist.PicklistFilter, picklist.paginate, picklist.Selection
- dispatch.RewriteRequest, dispatch.Dispatcher
- prompts.build_prompt, llm.ChatClient
- parse.parse_generated_content, parse.normalize_disclaimer
- writer.update_product, writer.set_metafields, writer.build_metafield_entries
- pipeline.bulk_rewrite, pipeline.rewrite_single
"""

from . import catalog, dispatch, errors, llm, parse, picklist, pipeline, prompts, shopify_client, writer  # re-export modules

__all__ = [
    "catalog",
    "dispatch",
    "errors",
    "llm",
    "parse",
    "picklist",
    "pipeline",
    "prompts",
    "shopify_client",
    "writer",
]
