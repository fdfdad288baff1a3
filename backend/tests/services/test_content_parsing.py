"""Tests for LLM output parsing.

Tests cover:
- Plain JSON, fenced JSON and JSON surrounded by prose
- Raw newlines inside string values
- HTML bodies with unescaped double quotes
- Required field validation
- Image plan normalisation
"""

import json

import pytest

from getcare.core.errors import ContentParseError
from getcare.services.content_parsing import (
    extract_json,
    find_json_object,
    parse_generated_content,
    strip_code_fences,
)


def payload(**overrides) -> dict:
    data = {
        "title": "Dental Implants in Korea",
        "excerpt": "Costs and clinics.",
        "content": "<p>Intro</p><p>[IMAGE_PLACEHOLDER_1]</p>",
        "metaTitle": "Dental Implants Korea",
        "metaDescription": "Implant prices in Seoul.",
        "tags": ["implants", " dental ", 3],
        "faqSchema": [
            {"question": "Is it safe?", "answer": "Yes."},
            {"question": "No answer"},
        ],
        "images": [
            {"placeholder": "[IMAGE_PLACEHOLDER_1]", "prompt": "Clinic lobby", "alt": "Lobby"},
        ],
    }
    data.update(overrides)
    return data


class TestExtraction:
    """Tests for locating the JSON object."""

    def test_plain_json(self) -> None:
        assert extract_json(json.dumps(payload()))["title"] == "Dental Implants in Korea"

    def test_code_fences(self) -> None:
        """Markdown code fences are stripped before parsing."""
        text = "```json\n" + json.dumps(payload()) + "\n```"
        assert strip_code_fences(text).startswith("{")
        assert extract_json(text)["title"] == "Dental Implants in Korea"

    def test_surrounding_prose(self) -> None:
        """Prose before and after the object is ignored."""
        text = "Here is your article:\n" + json.dumps(payload()) + "\nLet me know!"
        assert extract_json(text)["excerpt"] == "Costs and clinics."

    def test_braced_prose_before_object(self) -> None:
        """Balanced braces in leading prose are skipped for the real object."""
        text = "Plan: cover {costs} and {recovery}.\n" + json.dumps(payload())
        content = parse_generated_content(text)
        assert content.title == "Dental Implants in Korea"

    def test_nested_object_not_taken_for_payload(self) -> None:
        """A decodable inner object does not win over key-boundary recovery."""
        text = (
            '{"title": "T", "content": "<p class="lead">Hi</p>", '
            '"faqSchema": [{"question": "Q?", "answer": "A."}]}'
        )
        data = extract_json(text)
        assert data["title"] == "T"
        assert data["content"] == '<p class="lead">Hi</p>'

    def test_braces_inside_strings(self) -> None:
        """Braces inside string values do not end the object early."""
        text = 'Result: {"title": "A {b} c", "content": "<p>}</p>"} trailing'
        assert find_json_object(text) == '{"title": "A {b} c", "content": "<p>}</p>"}'

    def test_raw_newlines_repaired(self) -> None:
        """Raw newlines inside strings are escaped and parsed."""
        text = '{"title": "Lasik", "content": "<p>Line one</p>\n<p>Line two</p>"}'
        data = extract_json(text)
        assert data["content"] == "<p>Line one</p>\n<p>Line two</p>"

    def test_unescaped_quotes_recovered_by_key_boundaries(self) -> None:
        """Key-boundary extraction recovers fields with unescaped quotes."""
        text = '{"title": "T", "content": "<p class="lead">Hi</p>", "excerpt": "E"}'
        data = extract_json(text)
        assert data == {"title": "T", "content": '<p class="lead">Hi</p>', "excerpt": "E"}

    def test_no_json(self) -> None:
        assert extract_json("I cannot help with that.") is None


class TestParseGeneratedContent:
    """Tests for validation and normalisation."""

    def test_full_payload(self) -> None:
        """A complete payload maps onto GeneratedContent."""
        content = parse_generated_content(json.dumps(payload()), include_images=True)

        assert content.title == "Dental Implants in Korea"
        assert content.meta_title == "Dental Implants Korea"
        assert content.tags == ["implants", "dental"]
        assert content.faq_schema == [{"question": "Is it safe?", "answer": "Yes."}]
        assert content.images[0].placeholder == "[IMAGE_PLACEHOLDER_1]"
        assert content.images[0].alt == "Lobby"

    def test_body_accepted_for_content(self) -> None:
        data = payload()
        data["body"] = data.pop("content")
        assert parse_generated_content(json.dumps(data)).content.startswith("<p>Intro")

    def test_meta_fallbacks(self) -> None:
        """Meta title and description fall back to title and excerpt."""
        data = payload()
        del data["metaTitle"], data["metaDescription"]
        content = parse_generated_content(json.dumps(data))
        assert content.meta_title == content.title
        assert content.meta_description == "Costs and clinics."

    def test_missing_placeholders_assigned(self) -> None:
        """Images without a placeholder get sequential ones."""
        data = payload(images=[{"prompt": "Surgeon"}, {"prompt": "Recovery room"}])
        content = parse_generated_content(json.dumps(data), include_images=True)
        assert [i.placeholder for i in content.images] == [
            "[IMAGE_PLACEHOLDER_1]",
            "[IMAGE_PLACEHOLDER_2]",
        ]

    def test_images_without_prompt_dropped(self) -> None:
        data = payload(images=[{"placeholder": "[IMAGE_PLACEHOLDER_1]"}])
        assert parse_generated_content(json.dumps(data)).images == []

    @pytest.mark.parametrize(
        "overrides,missing",
        [
            ({"title": ""}, ["title"]),
            ({"content": "   "}, ["content"]),
            ({"title": None, "content": None}, ["title", "content"]),
        ],
    )
    def test_missing_required_fields(self, overrides: dict, missing: list[str]) -> None:
        """Missing title and content are both reported."""
        with pytest.raises(ContentParseError) as exc_info:
            parse_generated_content(json.dumps(payload(**overrides)))
        assert exc_info.value.missing_fields == missing
        assert exc_info.value.category == "GenerationError"

    def test_images_required_when_requested(self) -> None:
        """At least one image plan is required when images are requested."""
        with pytest.raises(ContentParseError) as exc_info:
            parse_generated_content(json.dumps(payload(images=[])), include_images=True)
        assert exc_info.value.missing_fields == ["images"]

    def test_images_optional_otherwise(self) -> None:
        content = parse_generated_content(json.dumps(payload(images=[])))
        assert content.images == []

    def test_unparseable(self) -> None:
        with pytest.raises(ContentParseError, match="No valid JSON"):
            parse_generated_content("")
