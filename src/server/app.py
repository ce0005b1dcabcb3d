from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

import requests
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from shopify_rewrite import catalog, pipeline, writer
from shopify_rewrite import shopify_client as sc
from shopify_rewrite.dispatch import TEMPLATE_NAMES, Dispatcher, DispatcherBusy, RewriteRequest
from shopify_rewrite.errors import MutationError, RewriterError, TransportError
from shopify_rewrite.llm import ChatClient, LLMConfig
from shopify_rewrite.parse import GeneratedContent, Specs, normalize_disclaimer
from shopify_rewrite.picklist import PicklistFilter, Selection, filter_products, paginate, suggest
from . import settings as app_settings


log = logging.getLogger(__name__)

HERE = Path(__file__).resolve().parent
TEMPLATES_DIR = HERE / "templates"
STATIC_DIR = HERE / "static"

load_dotenv()
app = FastAPI(title="Shopify Product Rewriter", version="0.1.0")
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
app_settings.init_settings(Path(os.getenv("REWRITER_SETTINGS") or Path.cwd() / "data" / "settings.json"))


def build_llm_client(s: Dict) -> ChatClient:
    return ChatClient(LLMConfig.from_settings(s))


app.state.llm = build_llm_client(app_settings.get_settings())
app.state.dispatchers = {}


# --- dependencies ---

def _get_shopify_cfg() -> sc.ShopifyConfig:
    # Prefer settings.json; fallback to env vars
    s = app_settings.get_settings()
    store = sc.normalize_store(s.get("shopify_store") or os.getenv("SHOPIFY_STORE", ""))
    token = (s.get("shopify_access_token") or os.getenv("SHOPIFY_ACCESS_TOKEN", "")).strip()
    version = (s.get("shopify_api_version") or os.getenv("SHOPIFY_API_VERSION", "")).strip() or sc.DEFAULT_API_VERSION
    if not store or not token:
        raise HTTPException(500, "Shopify credentials missing. Set them in Settings or as environment variables.")
    return sc.ShopifyConfig(store=store, token=token, api_version=version)


def get_settings() -> Dict:
    return app_settings.get_settings()


def get_shop() -> Tuple[requests.Session, sc.ShopifyConfig]:
    cfg = _get_shopify_cfg()
    return sc.build_session(cfg), cfg


def get_llm(request: Request) -> ChatClient:
    return request.app.state.llm


def get_dispatcher(shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop)) -> Dispatcher:
    dispatchers: Dict[str, Dispatcher] = app.state.dispatchers
    return dispatchers.setdefault(shop[1].store, Dispatcher())


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# --- JSON API ---

@app.post("/api/bulk-rewrite")
def api_bulk_rewrite(
    ids: str = Form("[]"),
    template: str = Form("aliexpress"),
    cat_big: str = Form(""),
    cat_mid: str = Form(""),
    shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop),
    llm: ChatClient = Depends(get_llm),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    s: Dict = Depends(get_settings),
):
    try:
        req = RewriteRequest.from_form(ids, template, cat_big, cat_mid)
    except ValueError as e:
        raise HTTPException(400, str(e))
    session, cfg = shop
    options = writer.WriteOptions.from_settings(s)
    try:
        result = dispatcher.dispatch(
            req,
            lambda r: pipeline.bulk_rewrite(session, cfg, llm, r, options, s.get("seo_suffix") or ""),
        )
    except DispatcherBusy as e:
        raise HTTPException(409, str(e))
    return {"status": "success", "count": result.count}


class RewriteBody(BaseModel):
    title: str = ""
    description: str = ""
    template: Literal["aliexpress", "alibaba"] = "aliexpress"


@app.post("/api/rewrite")
def api_rewrite(body: RewriteBody, llm: ChatClient = Depends(get_llm), s: Dict = Depends(get_settings)):
    try:
        raw = pipeline.rewrite_single(llm, body.title, body.description, body.template, s.get("seo_suffix") or "")
    except TransportError as e:
        log.error("rewrite failed: %s", e)
        raise HTTPException(502, str(e))
    return {"result": raw}


class MetafieldIn(BaseModel):
    namespace: str
    key: str
    type: str = "single_line_text_field"
    value: str = ""


class UpdateProductBody(BaseModel):
    id: str
    title: str = ""
    body_html: str = ""
    seo_title: str = ""
    seo_description: str = ""
    metafields: List[MetafieldIn] = Field(default_factory=list)


@app.post("/api/update-product")
def api_update_product(body: UpdateProductBody, shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop)):
    session, cfg = shop
    product_input = {
        "id": body.id,
        "title": body.title,
        "descriptionHtml": body.body_html,
        "seo": {"title": body.seo_title, "description": body.seo_description},
    }
    metafields = [{"ownerId": body.id, **m.model_dump()} for m in body.metafields]
    try:
        update = sc.product_update(session, cfg, product_input)
        if metafields:
            meta = sc.metafields_set(session, cfg, metafields)
        else:
            meta = {"metafields": [], "userErrors": []}
    except RewriterError as e:
        log.error("update-product %s failed: %s", body.id, e)
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)
    return {"data": {"productUpdate": update, "metafieldsSet": meta}}


# --- HTML UI ---

@app.get("/")
def ui_home():
    return RedirectResponse(url="/ui/products", status_code=302)


@app.get("/ui")
def ui_root():
    return RedirectResponse(url="/ui/products", status_code=302)


def _render_listing(
    request: Request,
    shop: Tuple[requests.Session, sc.ShopifyConfig],
    s: Dict,
    flt: PicklistFilter,
    page: int,
    selection: Selection,
    collection_query: str = "",
    form: Optional[Dict] = None,
    message: Optional[str] = None,
    error: Optional[str] = None,
):
    session, cfg = shop
    products: List[catalog.Product] = []
    try:
        products = catalog.read_catalog(session, cfg, (s.get("fulfillment_service") or "").strip() or None)
    except RewriterError as e:
        log.error("catalog read failed: %s", e)
        error = f"商品一覧の取得に失敗しました: {e}"
    options = catalog.collection_options(products)
    filtered = filter_products(products, flt)
    current = paginate(filtered, page, int(s.get("page_size") or 50))
    form = form or {}
    return templates.TemplateResponse(
        request,
        "products.html",
        {
            "store": cfg.store,
            "page": current,
            "flt": flt,
            "selection": selection,
            "page_selected": selection.page_selected(current.ids),
            "collection_query": collection_query,
            "collection_matches": suggest(options, collection_query),
            "collection_options": options,
            "template_names": TEMPLATE_NAMES,
            "template": form.get("template") or "aliexpress",
            "cat_big": form.get("cat_big") or "",
            "cat_mid": form.get("cat_mid") or "",
            "message": message,
            "error": error,
        },
    )


@app.get("/ui/products", response_class=HTMLResponse)
def ui_products(
    request: Request,
    keyword: str = "",
    latin_only: bool = False,
    collection: str = "",
    collection_query: str = "",
    page: int = 1,
    shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop),
    s: Dict = Depends(get_settings),
):
    flt = PicklistFilter(keyword=keyword, latin_only=latin_only, collection=collection)
    return _render_listing(request, shop, s, flt, page, Selection(), collection_query)


@app.post("/ui/products", response_class=HTMLResponse)
def ui_products_action(
    request: Request,
    op: str = Form("filter"),
    keyword: str = Form(""),
    latin_only: bool = Form(False),
    collection: str = Form(""),
    collection_query: str = Form(""),
    page: int = Form(1),
    selected: str = Form("[]"),
    visible: List[str] = Form([]),
    checked: List[str] = Form([]),
    template: str = Form("aliexpress"),
    cat_big: str = Form(""),
    cat_mid: str = Form(""),
    shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop),
    llm: ChatClient = Depends(get_llm),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    s: Dict = Depends(get_settings),
):
    selection = Selection.from_json(selected)
    selection.sync_page(visible, checked)
    message = error = None
    if op == "toggle_page":
        selection.toggle_page(visible)
    elif op == "prev":
        page -= 1
    elif op == "next":
        page += 1
    elif op == "rewrite":
        try:
            req = RewriteRequest(ids=selection.ids, template=template, cat_big=cat_big.strip(), cat_mid=cat_mid.strip())
        except ValueError as e:
            raise HTTPException(400, str(e))
        session, cfg = shop
        options = writer.WriteOptions.from_settings(s)
        try:
            result = dispatcher.dispatch(
                req,
                lambda r: pipeline.bulk_rewrite(session, cfg, llm, r, options, s.get("seo_suffix") or ""),
            )
        except DispatcherBusy:
            error = "送信中です。完了までお待ちください。"
        else:
            message = f"{result.count} 件の商品をリライトして保存しました。"
            if result.failed:
                error = f"{len(result.failed)} 件は失敗しました（詳細はサーバーログ）。"
            selection = Selection()
    flt = PicklistFilter(keyword=keyword, latin_only=latin_only, collection=collection)
    form = {"template": template, "cat_big": cat_big, "cat_mid": cat_mid}
    return _render_listing(request, shop, s, flt, page, selection, collection_query, form, message, error)


def _render_product(request: Request, product_id: str, context: Dict):
    base = {
        "product_id": product_id,
        "template_names": TEMPLATE_NAMES,
        "template": "aliexpress",
        "content": None,
        "message": None,
        "error": None,
    }
    base.update(context)
    return templates.TemplateResponse(request, "product_detail.html", base)


@app.get("/ui/products/{product_id}", response_class=HTMLResponse)
def ui_product(request: Request, product_id: str, shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop)):
    session, cfg = shop
    try:
        product = sc.fetch_product(session, cfg, sc.product_gid(product_id))
    except RewriterError as e:
        return _render_product(request, product_id, {"title": "", "description": "", "error": str(e)})
    return _render_product(
        request,
        product_id,
        {"title": product.get("title") or "", "description": product.get("descriptionHtml") or ""},
    )


@app.post("/ui/products/{product_id}/rewrite", response_class=HTMLResponse)
def ui_product_rewrite(
    request: Request,
    product_id: str,
    title: str = Form(""),
    description: str = Form(""),
    template: str = Form("aliexpress"),
    llm: ChatClient = Depends(get_llm),
    s: Dict = Depends(get_settings),
):
    ctx: Dict = {"title": title, "description": description, "template": template}
    try:
        ctx["content"] = pipeline.generate_content(llm, title, description, template, seo_suffix=s.get("seo_suffix") or "")
    except (RewriterError, ValueError) as e:
        ctx["error"] = f"リライトに失敗しました: {e}"
    return _render_product(request, product_id, ctx)


@app.post("/ui/products/{product_id}/save", response_class=HTMLResponse)
def ui_product_save(
    request: Request,
    product_id: str,
    title: str = Form(""),
    body_html: str = Form(""),
    seo_title: str = Form(""),
    seo_description: str = Form(""),
    details1: str = Form(""),
    details2: str = Form(""),
    details3: str = Form(""),
    details4: str = Form(""),
    shop: Tuple[requests.Session, sc.ShopifyConfig] = Depends(get_shop),
    s: Dict = Depends(get_settings),
):
    session, cfg = shop
    gid = sc.product_gid(product_id)
    content = GeneratedContent(
        title=title,
        body_html=normalize_disclaimer(body_html),
        seo_title=seo_title,
        seo_description=seo_description,
        specs=Specs(details1=details1, details2=details2, details3=details3, details4=details4),
    )
    ctx: Dict = {"title": title, "description": content.body_html, "content": content}
    try:
        writer.update_product(session, cfg, gid, content)
        entries = writer.build_metafield_entries(gid, content, options=writer.WriteOptions.from_settings(s))
        writer.set_metafields(session, cfg, entries)
    except MutationError as e:
        ctx["error"] = f"保存エラー: {e.operation} {e.user_errors}"
    except RewriterError as e:
        ctx["error"] = f"保存エラー: {e}"
    else:
        ctx["message"] = "Shopifyに保存されました。"
    return _render_product(request, product_id, ctx)


@app.get("/ui/settings", response_class=HTMLResponse)
def ui_get_settings(request: Request):
    s = app_settings.get_settings()
    return templates.TemplateResponse(request, "settings.html", {"s": s})


@app.post("/ui/settings")
def ui_post_settings(
    request: Request,
    shopify_store: str = Form(""),
    shopify_api_version: str = Form(sc.DEFAULT_API_VERSION),
    shopify_access_token: str = Form(""),
    fulfillment_service: str = Form(""),
    page_size: int = Form(50),
    llm_base_url: str = Form("https://api.openai.com"),
    llm_model: str = Form("gpt-4o"),
    llm_api_key_env: str = Form("OPENAI_API_KEY"),
    llm_timeout: int = Form(60),
    seo_suffix: str = Form("｜誉PRINTING"),
    dropship_value: str = Form("海外発送"),
    apply_template_suffix: str = Form("false"),
):
    cur = app_settings.get_settings()
    cur.update({
        "shopify_store": sc.normalize_store(shopify_store),
        "shopify_api_version": shopify_api_version.strip() or sc.DEFAULT_API_VERSION,
        "shopify_access_token": shopify_access_token.strip(),
        "fulfillment_service": fulfillment_service.strip(),
        "page_size": max(page_size, 1),
        "llm_base_url": llm_base_url.strip() or "https://api.openai.com",
        "llm_model": llm_model.strip() or "gpt-4o",
        "llm_api_key_env": llm_api_key_env.strip() or "OPENAI_API_KEY",
        "llm_timeout": max(llm_timeout, 1),
        "seo_suffix": seo_suffix.strip(),
        "dropship_value": dropship_value.strip(),
        "apply_template_suffix": (apply_template_suffix == "true"),
    })
    app_settings.save_settings(cur)
    request.app.state.llm = build_llm_client(cur)
    return RedirectResponse(url="/ui/settings", status_code=302)


@app.post("/ui/settings/test")
def ui_test_shopify():
    """Ping Shopify with current settings and return identity confirmation."""
    try:
        cfg = _get_shopify_cfg()
        shop = sc.get_shop_info(sc.build_session(cfg), cfg)
        return {"ok": True, "shop": {"name": shop.get("name"), "domain": shop.get("myshopifyDomain")}}
    except HTTPException as e:
        return {"ok": False, "error": str(e.detail)}
    except RewriterError as e:
        return {"ok": False, "error": str(e)}
