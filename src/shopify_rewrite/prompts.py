from __future__ import annotations
import json
from typing import Dict

from .parse import DISCLAIMER_HTML


DEFAULT_SEO_SUFFIX = "｜誉PRINTING"

# audience and tone per template
TEMPLATES: Dict[str, str] = {
    "aliexpress": (
        "海外倉庫から個人のお客様へお届けする通販商品です。"
        "親しみやすく、使う場面が想像できる言葉で書いてください。"
    ),
    "alibaba": (
        "法人・まとめ買いのお客様向けの商品です。"
        "仕様と用途が正確に伝わるよう、簡潔で落ち着いた言葉で書いてください。"
    ),
}


def output_schema(seo_suffix: str = DEFAULT_SEO_SUFFIX) -> str:
    schema = {
        "title": "40字以内の日本語タイトル",
        "bodyHtml": (
            "<p>特徴要約</p><p><strong>【ポイント】</strong></p>"
            "<ul><li>特徴1</li><li>特徴2</li><li>特徴3</li></ul>" + DISCLAIMER_HTML
        ),
        "seoTitle": f"末尾に『{seo_suffix}』をつけたタイトル",
        "seoDescription": "120〜240字の自然な日本語で要約",
        "specs": {
            "details1": "サイズに関する仕様",
            "details2": "素材・材質に関する仕様",
            "details3": "用途に関する仕様",
            "details4": "電源に関する仕様（なければ空文字）",
        },
    }
    return json.dumps(schema, ensure_ascii=False, indent=2)


def build_prompt(
    title: str,
    description: str,
    template: str = "aliexpress",
    cat_big: str = "",
    cat_mid: str = "",
    seo_suffix: str = DEFAULT_SEO_SUFFIX,
) -> str:
    if template not in TEMPLATES:
        raise ValueError(f"unknown template: {template}")
    lines = [
        "以下の商品情報をもとに、日本語の商品説明・SEO・メタフィールドをJSON形式で生成してください。",
        f"テンプレート種別：{template}",
        TEMPLATES[template],
    ]
    crumbs = [c for c in (cat_big.strip(), cat_mid.strip()) if c]
    if crumbs:
        lines.append("カテゴリ：" + " > ".join(crumbs))
    lines += [
        "",
        "【元タイトル】",
        title or "",
        "",
        "【元説明HTML】",
        description or "",
        "",
        "【出力フォーマット】以下のJSON形式のみで返してください。説明文やコードブロックは不要です。",
        "",
        output_schema(seo_suffix),
    ]
    return "\n".join(lines)
