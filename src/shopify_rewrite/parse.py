"""Turn raw LLM text into :class:`GeneratedContent`.

The model is asked for a single JSON object; anything before the first ``{``
or after the last ``}`` (prose, code fences) is discarded. The body HTML is
then normalised so it carries the disclaimer block exactly once.
"""
from __future__ import annotations
import json
import re
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ParseError


DISCLAIMER_HTML = (
    "<p><strong>【注意事項】</strong></p>"
    "<ul>"
    "<li><strong>写真と実物の色合いが若干異なる場合があります。</strong></li>"
    "<li><strong>手作業による測定のためサイズに多少の誤差がある場合がございます。予めご了承ください。</strong></li>"
    "</ul>"
)

_MARKER = "写真と実物の色合い"
_PHRASES = r"(?:写真と実物の色合い|手作業による測定)"
_HEADING = r"(?:<p[^>]*>\s*)?(?:<(?:strong|b)[^>]*>\s*)?【注意事項】(?:\s*</(?:strong|b)>)?(?:\s*</p>)?"
# heading followed by its bullet list
_HEADED_RE = re.compile(_HEADING + r"\s*<(ul|ol)[^>]*>.*?</\1>", re.S)
# bullet list repeated without its heading
_HEADLESS_RE = re.compile(
    r"<(ul|ol)[^>]*>(?:(?!</\1>).)*?" + _PHRASES + r"(?:(?!</\1>).)*</\1>", re.S
)
# a single disclaimer line inside <p>, <li> or between <br> tags
_LINE_RE = re.compile(
    r"(?:<br\s*/?>\s*)?(?:<(?:strong|b|span)(?:\s[^>]*)?>\s*)*[^<]*" + _PHRASES + r"[^<]*(?:\s*</(?:strong|b|span)>)*"
    r"(?=\s*(?:<br\s*/?>|</p>|</li>|</div>|$))",
    re.S,
)
_ORPHAN_RE = re.compile(_HEADING, re.S)
_EMPTY_RE = re.compile(r"<(p|li|ul|ol|strong|b|span|div)(?:\s[^>]*)?>\s*(?:<br\s*/?>\s*)*</\1>")


def normalize_disclaimer(html: str) -> str:
    body = html or ""
    for rx in (_HEADED_RE, _HEADLESS_RE, _LINE_RE, _ORPHAN_RE):
        body = rx.sub("", body)
    # removing lines can leave nested empty wrappers
    while True:
        stripped = _EMPTY_RE.sub("", body)
        if stripped == body:
            break
        body = stripped
    return body.strip() + DISCLAIMER_HTML


def count_disclaimers(html: str) -> int:
    return (html or "").count(_MARKER)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n".join(_as_text(v) for v in value)
    return str(value)


class Specs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    details1: str = ""
    details2: str = ""
    details3: str = ""
    details4: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> str:
        return _as_text(v)

    def slots(self) -> Dict[int, str]:
        return {1: self.details1, 2: self.details2, 3: self.details3, 4: self.details4}


class GeneratedContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    body_html: str = Field(alias="bodyHtml")
    seo_title: str = Field("", alias="seoTitle")
    seo_description: str = Field("", alias="seoDescription")
    specs: Specs = Field(default_factory=Specs)

    @field_validator("title", "body_html", "seo_title", "seo_description", mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("specs", mode="before")
    @classmethod
    def _default_specs(cls, v: Any) -> Any:
        return {} if v is None else v


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Parse the text between the first ``{`` and the last ``}`` of ``raw``."""
    text = raw or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ParseError(f"no JSON object in model output: {text[:120]!r}")
    snippet = text[start : end + 1]
    try:
        obj = json.loads(snippet)
    except (ValueError, RecursionError) as e:
        raise ParseError(f"invalid JSON in model output: {e}") from e
    if not isinstance(obj, dict):
        raise ParseError("model output JSON is not an object")
    return obj


def parse_generated_content(raw: str) -> GeneratedContent:
    obj = extract_json_object(raw)
    try:
        content = GeneratedContent.model_validate(obj)
    except ValidationError as e:
        raise ParseError(f"model output is missing fields: {e.errors()}") from e
    content.body_html = normalize_disclaimer(content.body_html)
    return content
