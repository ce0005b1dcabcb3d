import json

from shopify_rewrite import pipeline
from shopify_rewrite.dispatch import RewriteRequest
from shopify_rewrite.errors import TransportError
from shopify_rewrite.parse import DISCLAIMER_HTML, count_disclaimers
from shopify_rewrite.writer import WriteOptions

from conftest import FakeLLM, llm_json


def _gid(n):
    return f"gid://shopify/Product/{n}"


def _reply_by_title(replies):
    def reply(prompt):
        for title, text in replies.items():
            if f"【元タイトル】\n{title}\n" in prompt:
                if isinstance(text, Exception):
                    raise text
                return text
        raise AssertionError("unexpected prompt")

    return reply


def test_single_product_is_rewritten_and_saved(fake_shopify, shopify_cfg):
    fake_shopify.add_product(_gid(1), "Widget X", "<p>old</p>")
    llm = FakeLLM(
        "承知しました。\n"
        + llm_json("新ウィジェット", "<p>新しい</p>", details1="幅10cm", details2="", details3="", details4="")
        + "\n以上です。"
    )
    req = RewriteRequest(ids=[_gid(1)], template="aliexpress")

    result = pipeline.bulk_rewrite(fake_shopify, shopify_cfg, llm, req, WriteOptions(template_suffix=False))

    assert result.count == 1
    (update,) = fake_shopify.operations("productUpdate")
    product_input = update["input"]
    assert product_input["title"] == "新ウィジェット"
    assert product_input["descriptionHtml"].endswith(DISCLAIMER_HTML)
    assert count_disclaimers(product_input["descriptionHtml"]) == 1
    assert "templateSuffix" not in product_input

    (meta,) = fake_shopify.operations("metafieldsSet")
    keys = [(m["namespace"], m["key"], m["value"]) for m in meta["metafields"]]
    assert keys == [("spec", "details01", "幅10cm"), ("dropshipping", "aliexpress", "海外発送")]
    assert "Widget X" in llm.prompts[0]


def test_template_suffix_follows_template(fake_shopify, shopify_cfg):
    fake_shopify.add_product(_gid(1), "A")
    req = RewriteRequest(ids=[_gid(1)], template="alibaba", cat_big="家具")

    pipeline.bulk_rewrite(fake_shopify, shopify_cfg, FakeLLM(llm_json("A2")), req)

    assert fake_shopify.operations("productUpdate")[0]["input"]["templateSuffix"] == "alibaba"
    meta = fake_shopify.operations("metafieldsSet")[0]["metafields"]
    assert ("breadcrumbs", "cat_big", "家具") in [(m["namespace"], m["key"], m["value"]) for m in meta]


def test_failures_are_isolated_and_not_counted(fake_shopify, shopify_cfg):
    for n, title in enumerate(["good", "garbage", "rejected", "meta-fail", "offline", "good-too"], start=1):
        fake_shopify.add_product(_gid(n), title)
    fake_shopify.update_errors[_gid(3)] = [{"field": ["title"], "message": "invalid"}]
    fake_shopify.metafield_errors[_gid(4)] = [{"field": ["value"], "message": "invalid"}]
    llm = FakeLLM(
        _reply_by_title(
            {
                "good": llm_json("G1", details1="x"),
                "garbage": "申し訳ありませんが生成できません",
                "rejected": llm_json("R"),
                "meta-fail": llm_json("M", details1="y"),
                "offline": TransportError("LLM HTTP 500"),
                "good-too": llm_json("G2"),
            }
        )
    )
    ids = [_gid(n) for n in range(1, 7)] + [_gid(99)]

    result = pipeline.bulk_rewrite(fake_shopify, shopify_cfg, llm, RewriteRequest(ids=ids))

    assert result.count == 2
    assert [o.product_id for o in result.outcomes] == ids
    assert [o.ok for o in result.outcomes] == [True, False, False, False, False, True, False]
    assert {o.stage for o in result.outcomes} == {pipeline.COUNTED, pipeline.FAILED}
    errors = {o.product_id: o.error for o in result.failed}
    assert errors[_gid(2)].startswith("generated:")
    assert errors[_gid(3)].startswith("parsed:")
    assert errors[_gid(4)].startswith("product-updated:")
    assert errors[_gid(5)].startswith("prompted:")
    assert errors[_gid(99)].startswith("selected:")
    # product 4 was updated even though its metafields failed
    updated = [u["input"]["id"] for u in fake_shopify.operations("productUpdate")]
    assert updated == [_gid(1), _gid(3), _gid(4), _gid(6)]


def test_unexpected_exception_does_not_abort_batch(fake_shopify, shopify_cfg):
    fake_shopify.add_product(_gid(1), "boom")
    fake_shopify.add_product(_gid(2), "fine")
    llm = FakeLLM(_reply_by_title({"boom": RuntimeError("bug"), "fine": llm_json("F")}))

    result = pipeline.bulk_rewrite(fake_shopify, shopify_cfg, llm, RewriteRequest(ids=[_gid(1), _gid(2)]))

    assert result.count == 1
    assert result.failed[0].product_id == _gid(1)


def test_products_are_processed_one_after_another(fake_shopify, shopify_cfg):
    fake_shopify.add_product(_gid(1), "A")
    fake_shopify.add_product(_gid(2), "B")

    pipeline.bulk_rewrite(fake_shopify, shopify_cfg, FakeLLM(llm_json("X", details1="d")), RewriteRequest(ids=[_gid(1), _gid(2)]))

    assert [op for op, _ in fake_shopify.calls] == [
        "product",
        "productUpdate",
        "metafieldsSet",
        "product",
        "productUpdate",
        "metafieldsSet",
    ]


def test_empty_request_does_nothing(fake_shopify, shopify_cfg):
    result = pipeline.bulk_rewrite(fake_shopify, shopify_cfg, FakeLLM(), RewriteRequest())
    assert result.count == 0
    assert fake_shopify.calls == []


def test_rewrite_single_returns_raw_model_text():
    raw = "前置き " + json.dumps({"title": "T"})
    llm = FakeLLM(raw)
    assert pipeline.rewrite_single(llm, "Widget", "<p>d</p>", "alibaba") == raw
    assert "テンプレート種別：alibaba" in llm.prompts[0]
