"""Command-line entry point: list the catalog, rewrite products, or serve the UI."""
from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from . import catalog, pipeline, writer
from . import shopify_client as sc
from .dispatch import TEMPLATE_NAMES, RewriteRequest
from .errors import RewriterError
from .llm import ChatClient, LLMConfig
from .picklist import PicklistFilter, filter_products
from .prompts import DEFAULT_SEO_SUFFIX


def load_env(dotenv_path: Optional[str]) -> None:
    if dotenv_path is None:
        # try default .env in cwd if present
        default_env = Path.cwd() / ".env"
        if default_env.exists():
            load_dotenv(default_env)
        return
    p = Path(dotenv_path)
    if p.exists():
        load_dotenv(p)


def fail(msg: str) -> None:
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(1)


def get_config(args: argparse.Namespace) -> sc.ShopifyConfig:
    store = args.store or os.getenv("SHOPIFY_STORE")
    token = args.token or os.getenv("SHOPIFY_ACCESS_TOKEN")
    api_version = args.api_version or os.getenv("SHOPIFY_API_VERSION", sc.DEFAULT_API_VERSION)

    missing = []
    if not store:
        missing.append("--store or SHOPIFY_STORE")
    if not token:
        missing.append("--token or SHOPIFY_ACCESS_TOKEN")
    if missing:
        fail(f"Missing required config: {', '.join(missing)}")

    return sc.ShopifyConfig(store=sc.normalize_store(store), token=token.strip(), api_version=api_version)


def get_llm(args: argparse.Namespace) -> ChatClient:
    cfg = LLMConfig(
        api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        model=args.model or os.getenv("LLM_MODEL", "gpt-4o"),
        base_url=os.getenv("LLM_BASE_URL", "https://api.openai.com"),
        timeout=int(os.getenv("LLM_TIMEOUT", "60")),
    )
    return ChatClient(cfg)


def cmd_list(args: argparse.Namespace) -> int:
    cfg = get_config(args)
    session = sc.build_session(cfg)
    fulfillment = args.fulfillment_service
    if fulfillment is None:
        fulfillment = os.getenv("FULFILLMENT_SERVICE", "dsers-fulfillment-service")
    try:
        products = catalog.read_catalog(session, cfg, fulfillment or None)
    except RewriterError as e:
        fail(str(e))
    flt = PicklistFilter(keyword=args.keyword or "", latin_only=args.latin_only, collection=args.collection or "")
    for p in filter_products(products, flt):
        cols = ", ".join(p.collection_titles())
        print(f"{p.id}\t{p.title}\t{cols}")
    return 0


def cmd_rewrite(args: argparse.Namespace) -> int:
    log = logging.getLogger(__name__)
    cfg = get_config(args)
    session = sc.build_session(cfg)
    llm = get_llm(args)
    ids = [sc.product_gid(i) for i in args.ids]
    seo_suffix = os.getenv("SEO_SUFFIX", DEFAULT_SEO_SUFFIX)

    if args.dry_run:
        errors = 0
        for pid in ids:
            try:
                product = sc.fetch_product(session, cfg, pid)
                content = pipeline.generate_content(
                    llm,
                    product.get("title") or "",
                    product.get("descriptionHtml") or "",
                    args.template,
                    args.cat_big,
                    args.cat_mid,
                    seo_suffix,
                )
            except RewriterError as e:
                print(f"{pid} -> error:{e}")
                errors += 1
                continue
            entries = writer.build_metafield_entries(pid, content, args.cat_big, args.cat_mid)
            print(f"{pid} -> dry-run title='{content.title}' seo_title='{content.seo_title}' metafields={[e['key'] for e in entries]}")
        return 0 if errors == 0 else 1

    req = RewriteRequest(ids=ids, template=args.template, cat_big=args.cat_big, cat_mid=args.cat_mid)
    result = pipeline.bulk_rewrite(session, cfg, llm, req, writer.WriteOptions(), seo_suffix)
    for o in result.outcomes:
        print(f"{o.product_id} -> {'ok' if o.ok else 'error:' + (o.error or '')}")
    log.info("Rewrite summary: updated=%s failed=%s", result.count, len(result.failed))
    print(f"Rewrite complete. updated={result.count} failed={len(result.failed)}")
    return 0 if not result.failed else 1


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("server.app:app", host=args.host, port=args.port, log_level="debug" if args.verbose >= 2 else "info")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Rewrite Shopify product copy with an LLM")
    p.add_argument("--store", help="Shopify store domain, e.g. example.myshopify.com (or SHOPIFY_STORE)")
    p.add_argument("--token", help="Admin API access token (or SHOPIFY_ACCESS_TOKEN)")
    p.add_argument("--api-version", help=f"Admin API version (default: {sc.DEFAULT_API_VERSION})")
    p.add_argument("--dotenv", help="Path to a .env file (default: ./.env when present)")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug")
    sub = p.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="List catalog products")
    ls.add_argument("--keyword", help="Title substring filter")
    ls.add_argument("--latin-only", action="store_true", help="Only titles containing a Latin letter")
    ls.add_argument("--collection", help="Exact collection name")
    ls.add_argument(
        "--fulfillment-service",
        help="Fulfillment service handle to keep (default: FULFILLMENT_SERVICE or dsers-fulfillment-service; '' for all)",
    )
    ls.set_defaults(func=cmd_list)

    rw = sub.add_parser("rewrite", help="Rewrite and save the given products")
    rw.add_argument("ids", nargs="+", help="Product ids (numeric or gid://shopify/Product/...)")
    rw.add_argument("--template", choices=TEMPLATE_NAMES, default="aliexpress")
    rw.add_argument("--cat-big", default="", help="Breadcrumb top category")
    rw.add_argument("--cat-mid", default="", help="Breadcrumb middle category")
    rw.add_argument("--model", help="Chat model (default: LLM_MODEL or gpt-4o)")
    rw.add_argument("--dry-run", action="store_true", help="Generate and parse only; do not write to Shopify")
    rw.set_defaults(func=cmd_rewrite)

    sv = sub.add_parser("serve", help="Run the web UI")
    sv.add_argument("--host", default="127.0.0.1")
    sv.add_argument("--port", type=int, default=8000)
    sv.set_defaults(func=cmd_serve)
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    # Setup logging
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")
    load_env(args.dotenv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
