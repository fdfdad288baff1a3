"""Tests for prompt construction.

Tests cover:
- Deterministic output for identical inputs
- Locale validation
- Image placeholder tokens and the JSON output contract
- Content type and search intent analysis
- Category guidance, persona and retrieval sections
"""

import pytest

from getcare.core.errors import ValidationError
from getcare.services.author_persona import DEFAULT_PERSONA, AuthorProfile
from getcare.services.prompt_builder import (
    ContentType,
    SearchIntent,
    analyze_content_type,
    analyze_search_intent,
    build_prompt,
    image_placeholders,
)


def build(**overrides):
    kwargs = {
        "keyword": "rhinoplasty cost in Korea",
        "locale": "en",
        "category": "plastic-surgery",
        "persona": DEFAULT_PERSONA,
        "context_snippets": (),
        "image_count": 3,
    }
    kwargs.update(overrides)
    return build_prompt(**kwargs)


class TestDeterminism:
    """Tests for stable prompt output."""

    def test_same_inputs_same_prompt(self) -> None:
        """Identical inputs always produce identical prompts."""
        assert build() == build()

    def test_keyword_in_user_prompt(self) -> None:
        assert '## TARGET KEYWORD: "rhinoplasty cost in Korea"' in build().user_prompt


class TestLocale:
    """Tests for locale handling."""

    def test_invalid_locale_rejected(self) -> None:
        """An unsupported locale raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            build(locale="de")
        assert exc_info.value.field == "locale"

    def test_system_prompt_names_language(self) -> None:
        """The system prompt names the target language."""
        system = build(locale="ja").system_prompt
        assert "100% Japanese (日本語)" in system
        assert "Do not use Korean" in system

    def test_korean_system_prompt(self) -> None:
        assert "Korean is the target language" in build(locale="ko").system_prompt

    def test_messenger_platform(self) -> None:
        """Each locale recommends its own messenger platform."""
        assert "Contact CTA: LINE" in build(locale="th").user_prompt
        assert "Contact CTA: KakaoTalk" in build(locale="ko").user_prompt


class TestPlaceholders:
    """Tests for image placeholder tokens."""

    def test_tokens(self) -> None:
        assert image_placeholders(2) == ("[IMAGE_PLACEHOLDER_1]", "[IMAGE_PLACEHOLDER_2]")
        assert image_placeholders(0) == ()

    def test_contract_lists_every_token(self) -> None:
        """The output contract lists every placeholder token."""
        prompt = build(image_count=4)
        assert prompt.placeholders == image_placeholders(4)
        for token in prompt.placeholders:
            assert f'"placeholder": "{token}"' in prompt.user_prompt

    def test_no_images(self) -> None:
        """With zero images the prompt asks for no placeholders."""
        prompt = build(image_count=0)
        assert prompt.placeholders == ()
        assert '"images": []' in prompt.user_prompt


class TestAnalysis:
    """Tests for keyword analysis."""

    @pytest.mark.parametrize(
        "keyword,expected",
        [
            ("rhinoplasty cost in Korea", ContentType.PRICING),
            ("코성형 가격", ContentType.PRICING),
            ("Korea vs Turkey hair transplant", ContentType.COMPARISON),
            ("how to book a clinic in Seoul", ContentType.PROCEDURAL),
            ("ultimate guide to medical tourism", ContentType.GUIDE),
            ("lasik questions", ContentType.FAQ),
            ("double eyelid surgery", ContentType.INFORMATIONAL),
        ],
    )
    def test_content_type(self, keyword: str, expected: ContentType) -> None:
        assert analyze_content_type(keyword) == expected

    @pytest.mark.parametrize(
        "keyword,expected",
        [
            ("dental implant price", SearchIntent.TRANSACTIONAL),
            ("best dermatology clinic", SearchIntent.COMMERCIAL),
            ("Gangnam hospital address", SearchIntent.NAVIGATIONAL),
            ("what is thread lift", SearchIntent.INFORMATIONAL),
        ],
    )
    def test_search_intent(self, keyword: str, expected: SearchIntent) -> None:
        assert analyze_search_intent(keyword) == expected


class TestSections:
    """Tests for optional prompt sections."""

    def test_known_category_guidance(self) -> None:
        """Known categories add specialty guidance."""
        assert "## CATEGORY: Plastic Surgery / Cosmetic Procedures" in build().user_prompt

    def test_unknown_category(self) -> None:
        prompt = build(category="ophthalmology")
        assert "## CATEGORY: ophthalmology" in prompt.user_prompt

    def test_retrieval_snippets_numbered(self) -> None:
        """Retrieval snippets are numbered in the reference section."""
        prompt = build(context_snippets=["First fact.", "  ", "Second fact."])
        assert "1. First fact.\n2. Second fact." in prompt.user_prompt

    def test_no_reference_section_without_snippets(self) -> None:
        assert "REFERENCE CONTEXT" not in build().user_prompt

    def test_persona_section_localized(self) -> None:
        """Persona name and bio are taken in the target locale."""
        persona = AuthorProfile(
            id="p1",
            slug="ji-woo",
            names={"en": "Ji-woo Park", "ja": "パク・ジウ"},
            years_of_experience=8,
        )
        prompt = build(locale="ja", persona=persona)
        assert "- Name: パク・ジウ" in prompt.user_prompt
        assert "- Experience: 8 years" in prompt.user_prompt
