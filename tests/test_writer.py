import pytest

from shopify_rewrite import writer
from shopify_rewrite.errors import MutationError
from shopify_rewrite.parse import GeneratedContent, Specs

PID = "gid://shopify/Product/7"


def _content(**specs):
    return GeneratedContent(
        title="新ウィジェット",
        body_html="<p>本文</p>",
        seo_title="新ウィジェット｜誉PRINTING",
        seo_description="説明",
        specs=Specs(**specs),
    )


def _keys(entries):
    return [(e["namespace"], e["key"]) for e in entries]


def test_blank_specs_and_breadcrumbs_are_not_written():
    entries = writer.build_metafield_entries(PID, _content(details1=" 10cm ", details2="綿", details3="", details4="   "))

    assert _keys(entries) == [
        ("spec", "details01"),
        ("spec", "details02"),
        ("dropshipping", "aliexpress"),
    ]
    assert entries[0]["value"] == "10cm"
    assert entries[0]["type"] == "multi_line_text_field"
    assert all(e["ownerId"] == PID for e in entries)


def test_breadcrumbs_and_dropship_options():
    options = writer.WriteOptions(dropship_value="国内発送")
    entries = writer.build_metafield_entries(PID, _content(), "家具", "椅子", options)

    assert _keys(entries) == [
        ("dropshipping", "aliexpress"),
        ("breadcrumbs", "cat_big"),
        ("breadcrumbs", "cat_mid"),
    ]
    assert entries[0]["value"] == "国内発送"
    assert entries[1]["type"] == "single_line_text_field"


def test_write_options_from_settings():
    opts = writer.WriteOptions.from_settings({"dropship_value": "x", "apply_template_suffix": False})
    assert opts.dropship_value == "x"
    assert opts.dropship_namespace == "dropshipping"
    assert opts.template_suffix is False


def test_product_input_sets_template_suffix_only_when_given():
    data = writer.product_input(PID, _content(), "alibaba")
    assert data["templateSuffix"] == "alibaba"
    assert data["seo"] == {"title": "新ウィジェット｜誉PRINTING", "description": "説明"}
    assert "templateSuffix" not in writer.product_input(PID, _content())


def test_update_product_raises_on_user_errors(fake_shopify, shopify_cfg):
    fake_shopify.update_errors[PID] = [{"field": ["title"], "message": "Title is too long"}]

    with pytest.raises(MutationError) as exc:
        writer.update_product(fake_shopify, shopify_cfg, PID, _content())

    assert exc.value.operation == "productUpdate"
    assert "Title is too long" in str(exc.value)


def test_set_metafields_skips_request_for_no_entries(fake_shopify, shopify_cfg):
    assert writer.set_metafields(fake_shopify, shopify_cfg, []) == {"metafields": [], "userErrors": []}
    assert fake_shopify.calls == []


def test_set_metafields_raises_on_user_errors(fake_shopify, shopify_cfg):
    fake_shopify.metafield_errors[PID] = [{"field": ["value"], "message": "bad value"}]
    entries = writer.build_metafield_entries(PID, _content(details1="x"))
    with pytest.raises(MutationError) as exc:
        writer.set_metafields(fake_shopify, shopify_cfg, entries)
    assert exc.value.operation == "metafieldsSet"
