"""Extraction of the generated-content JSON object from raw LLM text.

The model is asked for a single JSON object but may wrap it in markdown
fences or surround it with prose. parse_generated_content() is the one
place that turns that text into a GeneratedContent, trying in order:

1. Strip markdown code fences
2. Walk the balanced {...} spans in the text, first one first
3. json.loads, then again after escaping raw control characters
4. Key-boundary extraction of the string fields

Anything that still lacks a title or content raises ContentParseError.
"""

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from getcare.core.errors import ContentParseError
from getcare.core.logging import get_logger
from getcare.services.prompt_builder import PLACEHOLDER_TEMPLATE

logger = get_logger(__name__)

_STRING_FIELDS = ("title", "excerpt", "content", "metaTitle", "metaDescription")
_CONTENT_KEYS = (*_STRING_FIELDS, "body")
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")


@dataclass
class ImagePlan:
    """One image the model planned for the article."""

    placeholder: str
    prompt: str
    alt: str = ""
    caption: str = ""
    position: str | None = None


@dataclass
class GeneratedContent:
    """Validated content fields from one LLM response."""

    title: str
    content: str
    excerpt: str = ""
    meta_title: str = ""
    meta_description: str = ""
    tags: list[str] = field(default_factory=list)
    faq_schema: list[dict[str, str]] = field(default_factory=list)
    images: list[ImagePlan] = field(default_factory=list)


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    return cleaned


def iter_json_objects(text: str) -> Iterator[str]:
    """Yield every balanced {...} span in text, in order of its opening brace.

    Braces inside JSON string literals are ignored, so HTML containing
    "{" or "}" in attribute values does not end the scan early.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : index + 1]
                    break
        start = text.find("{", start + 1)


def find_json_object(text: str) -> str | None:
    """Return the first balanced {...} span in text, or None."""
    return next(iter_json_objects(text), None)


def _try_json_loads(text: str) -> dict[str, Any] | None:
    try:
        result = json.loads(text)
    except ValueError:
        return None
    return result if isinstance(result, dict) else None


def _repair_control_chars(text: str) -> str:
    """Escape raw newlines and tabs that appear inside JSON string values."""

    def escape(match: re.Match[str]) -> str:
        value = match.group(0)
        value = value.replace("\t", "\\t")
        return value.replace("\r\n", "\\n").replace("\r", "\\n").replace("\n", "\\n")

    return re.sub(r'"(?:[^"\\]|\\.)*"', escape, text, flags=re.S)


def _extract_string_fields(text: str) -> dict[str, Any] | None:
    """Last resort: use key positions as value boundaries.

    Handles HTML bodies with unescaped double quotes, which break every
    real JSON parser. Only string fields are recovered.
    """
    positions: list[tuple[str, int, int]] = []
    for key in _STRING_FIELDS:
        match = re.search(rf'"{key}"\s*:\s*"', text)
        if match:
            positions.append((key, match.start(), match.end()))
    if not positions:
        return None
    positions.sort(key=lambda p: p[1])

    # Any later non-string key also bounds the previous value
    other_keys = [m.start() for m in re.finditer(r',\s*"(?:tags|faqSchema|images)"\s*:', text)]

    result: dict[str, Any] = {}
    for i, (key, _key_start, value_start) in enumerate(positions):
        bounds = [p[1] for p in positions[i + 1 :]] + [
            k for k in other_keys if k > value_start
        ]
        end = min(bounds) if bounds else text.rfind("}")
        if end <= value_start:
            continue
        region = text[value_start:end]
        last_quote = region.rfind('"')
        if last_quote < 0:
            continue
        raw = region[:last_quote]
        result[key] = raw.replace('\\"', '"').replace("\\n", "\n")
    return result or None


def extract_json(text: str) -> dict[str, Any] | None:
    """Best-effort extraction of a JSON object from free text.

    Balanced spans are tried in order, plain and then with control
    characters repaired. The first object carrying a content field wins.
    Failing that, string fields are recovered by key position, and only
    then is any other decoded object returned.
    """
    cleaned = strip_code_fences(text)
    unparsed: list[str] = []
    other: dict[str, Any] | None = None
    for candidate in iter_json_objects(cleaned):
        parsed = _try_json_loads(candidate)
        if parsed is None:
            parsed = _try_json_loads(_repair_control_chars(candidate))
        if parsed is None:
            unparsed.append(candidate)
        elif any(key in parsed for key in _CONTENT_KEYS):
            return parsed
        elif other is None:
            other = parsed

    if not unparsed and other is None:
        # Truncated output can still carry recoverable fields
        return _extract_string_fields(cleaned) if cleaned.lstrip().startswith("{") else None
    for candidate in unparsed:
        recovered = _extract_string_fields(candidate)
        if recovered is not None:
            return recovered
    return other


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _parse_faq(value: Any) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    faq: list[dict[str, str]] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        question = _as_text(item.get("question"))
        answer = _as_text(item.get("answer"))
        if question and answer:
            faq.append({"question": question, "answer": answer})
    return faq


def _parse_images(value: Any) -> list[ImagePlan]:
    if not isinstance(value, list):
        return []
    plans: list[ImagePlan] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, dict):
            continue
        prompt = _as_text(item.get("prompt"))
        if not prompt:
            continue
        placeholder = _as_text(item.get("placeholder")) or PLACEHOLDER_TEMPLATE.format(
            index=len(plans) + 1
        )
        if placeholder in seen:
            continue
        seen.add(placeholder)
        plans.append(
            ImagePlan(
                placeholder=placeholder,
                prompt=prompt,
                alt=_as_text(item.get("alt")),
                caption=_as_text(item.get("caption")),
                position=_as_text(item.get("position")) or None,
            )
        )
    return plans


def parse_generated_content(text: str, include_images: bool = False) -> GeneratedContent:
    """Turn raw LLM output into GeneratedContent.

    Args:
        text: The model's full response text
        include_images: Require at least one image plan

    Raises:
        ContentParseError: If no JSON object is found or required fields
            are missing
    """
    data = extract_json(text or "")
    if data is None:
        logger.warning(
            "No JSON object found in LLM response",
            extra={"snippet": (text or "")[:300], "length": len(text or "")},
        )
        raise ContentParseError("No valid JSON object found in LLM response")

    title = _as_text(data.get("title"))
    content = _as_text(data.get("content")) or _as_text(data.get("body"))
    images = _parse_images(data.get("images"))

    missing: list[str] = []
    if not title:
        missing.append("title")
    if not content:
        missing.append("content")
    if include_images and not images:
        missing.append("images")
    if missing:
        raise ContentParseError(
            f"LLM response missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )

    tags = data.get("tags")
    return GeneratedContent(
        title=title,
        content=content,
        excerpt=_as_text(data.get("excerpt")),
        meta_title=_as_text(data.get("metaTitle")) or title,
        meta_description=_as_text(data.get("metaDescription"))
        or _as_text(data.get("excerpt")),
        tags=[t.strip() for t in tags if isinstance(t, str) and t.strip()]
        if isinstance(tags, list)
        else [],
        faq_schema=_parse_faq(data.get("faqSchema")),
        images=images,
    )
