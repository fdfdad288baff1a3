"""Prompt construction for blog content generation.

build_prompt() is a pure function of its inputs: the same persona, locale,
retrieval snippets, keyword, category and image count always produce the
same system and user prompt text. Nothing here performs I/O or reads the
clock.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from getcare.services.author_persona import AuthorProfile
from getcare.services.locales import LocaleRules, get_locale_rules

PROMPT_VERSION = "4.0"
TARGET_WORD_COUNT = 1800
PLACEHOLDER_TEMPLATE = "[IMAGE_PLACEHOLDER_{index}]"
IMAGE_POSITIONS = ("after-intro", "mid-content", "before-cta")


class ContentType(str, Enum):
    """Shape of article a keyword calls for."""

    PRICING = "pricing"
    COMPARISON = "comparison"
    PROCEDURAL = "procedural"
    GUIDE = "guide"
    FAQ = "faq"
    INFORMATIONAL = "informational"


class SearchIntent(str, Enum):
    """Why someone searches for a keyword."""

    TRANSACTIONAL = "transactional"
    COMMERCIAL = "commercial"
    NAVIGATIONAL = "navigational"
    INFORMATIONAL = "informational"


# Checked in order; first match wins
_CONTENT_TYPE_PATTERNS: tuple[tuple[ContentType, re.Pattern[str]], ...] = (
    (
        ContentType.PRICING,
        re.compile(r"cost|price|how much|가격|비용|費用|价格|ราคา|стоимость|цена", re.I),
    ),
    (
        ContentType.COMPARISON,
        re.compile(
            r"\bvs\b|versus|comparison|compare|best|top|비교|對比|对比|比較|เปรียบเทียบ|сравнение",
            re.I,
        ),
    ),
    (
        ContentType.PROCEDURAL,
        re.compile(r"how to|steps|process|방법|과정|過程|过程|วิธี|\bкак\b", re.I),
    ),
    (
        ContentType.GUIDE,
        re.compile(r"guide|complete|ultimate|everything|가이드|指南|ガイド|คู่มือ|руководство", re.I),
    ),
    (ContentType.FAQ, re.compile(r"\bfaq\b|questions|q&a|질문|よくある質問", re.I)),
)

_SEARCH_INTENT_PATTERNS: tuple[tuple[SearchIntent, re.Pattern[str]], ...] = (
    (
        SearchIntent.TRANSACTIONAL,
        re.compile(
            r"cost|price|how much|book|booking|appointment|reserve|가격|비용|예약|予約|预约|預約|จอง",
            re.I,
        ),
    ),
    (
        SearchIntent.COMMERCIAL,
        re.compile(r"best|top|recommended|review|\bvs\b|추천|후기|おすすめ|推荐|推薦|รีวิว|отзывы", re.I),
    ),
    (
        SearchIntent.NAVIGATIONAL,
        re.compile(r"clinic|hospital|near|location|address|병원|클리닉|医院|病院|โรงพยาบาล|клиника", re.I),
    ),
)

_CONTENT_TYPE_DESCRIPTIONS: dict[ContentType, str] = {
    ContentType.INFORMATIONAL: "Informational - standard E-E-A-T structure",
    ContentType.PROCEDURAL: "Procedural - step-by-step format, HowTo schema ready",
    ContentType.COMPARISON: "Comparison - comparison tables, clear vs structure",
    ContentType.PRICING: "Pricing - specific price ranges and cost comparison tables",
    ContentType.GUIDE: "Comprehensive guide - long-form, table of contents",
    ContentType.FAQ: "FAQ-focused - question and answer format, FAQPage schema",
}

_SEARCH_INTENT_DESCRIPTIONS: dict[SearchIntent, str] = {
    SearchIntent.TRANSACTIONAL: "Transactional - the reader is ready to act or compare prices",
    SearchIntent.COMMERCIAL: "Commercial investigation - the reader is comparing options",
    SearchIntent.NAVIGATIONAL: "Navigational - the reader is looking for a specific place",
    SearchIntent.INFORMATIONAL: "Informational - the reader wants to learn about the topic",
}

_TYPE_REQUIREMENTS: dict[ContentType, tuple[str, ...]] = {
    ContentType.INFORMATIONAL: (),
    ContentType.PROCEDURAL: (
        "Number every step and give each a short name",
        "Include time estimates where relevant",
    ),
    ContentType.COMPARISON: (
        "Include at least two comparison tables (Korea vs home country)",
        "Acknowledge pros and cons of each option",
    ),
    ContentType.PRICING: (
        "Give specific price ranges, never vague words like 'affordable'",
        "Explain what is included and which factors change the price",
    ),
    ContentType.GUIDE: (
        "Open with a table of contents",
        "Move from overview to specifics",
    ),
    ContentType.FAQ: (
        "Write at least 10 FAQ items using real search phrasing",
        "Keep each answer between 50 and 80 words",
    ),
}


@dataclass(frozen=True)
class CategoryGuidance:
    """Domain facts injected for a known medical category."""

    display_name: str
    eeat_signals: tuple[str, ...]
    must_cover: tuple[str, ...]
    price_benchmarks: tuple[tuple[str, str], ...]
    risk_disclaimer: str


CATEGORY_GUIDANCE: dict[str, CategoryGuidance] = {
    "plastic-surgery": CategoryGuidance(
        display_name="Plastic Surgery / Cosmetic Procedures",
        eeat_signals=(
            "Korean plastic surgeons complete 6+ years of specialized training after medical school",
            "Gangnam Medical District has 500+ clinics within a 3km radius",
            "The Korean Association of Plastic Surgeons maintains strict standards",
        ),
        must_cover=(
            "Techniques popular in Korea (e.g. non-incisional vs incisional)",
            "Realistic day-by-day recovery timeline",
            "Consultation process and anesthesia options",
            "Revision surgery considerations",
        ),
        price_benchmarks=(
            ("Rhinoplasty", "$2,500-$8,000 USD"),
            ("Double Eyelid Surgery", "$1,500-$4,000 USD"),
            ("Face Lift", "$5,000-$15,000 USD"),
            ("Jaw Reduction", "$5,000-$12,000 USD"),
        ),
        risk_disclaimer=(
            "All surgical procedures carry risks including infection, scarring, "
            "asymmetry and anesthesia complications. Results vary by individual."
        ),
    ),
    "dermatology": CategoryGuidance(
        display_name="Dermatology / Skin Treatments",
        eeat_signals=(
            "Korean dermatology pioneered combination laser protocols",
            "Treatments and devices are approved by the Korean MFDS",
            "K-beauty skincare science is globally recognized",
        ),
        must_cover=(
            "Which skin types each treatment suits",
            "Number of sessions and spacing between them",
            "Downtime and post-treatment care",
        ),
        price_benchmarks=(
            ("Laser Toning (per session)", "$100-$300 USD"),
            ("Rejuran Healer", "$300-$600 USD"),
            ("Ultherapy (full face)", "$1,500-$3,500 USD"),
            ("Botox (per area)", "$200-$500 USD"),
        ),
        risk_disclaimer=(
            "Skin treatments may cause temporary redness, swelling or sensitivity. "
            "Results vary based on skin type and condition."
        ),
    ),
    "dental": CategoryGuidance(
        display_name="Dental / Oral Care",
        eeat_signals=(
            "Korean dental clinics use digital guided implant surgery widely",
            "Implant success rates exceed 95% at accredited clinics",
        ),
        must_cover=(
            "Number of visits and healing time between them",
            "Materials (zirconia, ceramic) and their trade-offs",
            "Warranty and follow-up care after returning home",
        ),
        price_benchmarks=(
            ("Dental Implant (single)", "$1,000-$2,500 USD"),
            ("All-on-4 (per arch)", "$8,000-$15,000 USD"),
            ("Zirconia Crown", "$500-$1,000 USD"),
            ("Veneers (per tooth)", "$400-$900 USD"),
        ),
        risk_disclaimer=(
            "Dental procedures may involve risks such as infection, nerve damage "
            "or implant failure. Always choose accredited dental clinics."
        ),
    ),
    "health-checkup": CategoryGuidance(
        display_name="Health Checkup / Preventive Care",
        eeat_signals=(
            "Korean hospitals run same-day comprehensive checkup programs",
            "Results are usually available within 1-3 days",
        ),
        must_cover=(
            "What each checkup tier includes",
            "Preparation (fasting, medication) before the day",
            "How results are explained to international patients",
        ),
        price_benchmarks=(
            ("Basic Health Checkup", "$300-$800 USD"),
            ("Comprehensive Checkup", "$1,000-$2,500 USD"),
            ("PET-CT Cancer Screening", "$1,000-$2,000 USD"),
        ),
        risk_disclaimer=(
            "Health checkups are diagnostic and may require follow-up tests or "
            "treatment. Discuss any concerns with your healthcare provider."
        ),
    ),
}

BEST_PRACTICES: dict[str, dict[str, tuple[str, ...]]] = {
    "plastic-surgery": {
        "ko": (
            "수술 전후 사진을 포함하되, 의료법 준수",
            "회복 기간과 과정을 상세히 설명",
            "의료진 경력과 자격증 강조",
            "안전성과 부작용에 대한 투명한 정보 제공",
        ),
        "en": (
            "Include before/after photos only if legally compliant",
            "Explain the recovery period and process in detail",
            "Emphasize surgeon credentials and experience",
            "Be transparent about safety and side effects",
        ),
    },
    "dermatology": {
        "ko": (
            "피부 타입별 맞춤 정보 제공",
            "시술 후 관리 방법 상세 기술",
            "가격 투명성 확보",
        ),
        "en": (
            "Tailor information to different skin types",
            "Detail post-treatment care",
            "Be transparent about prices",
        ),
    },
    "general": {
        "ko": (
            "정확하고 최신 의료 정보 제공",
            "E-E-A-T 원칙 준수",
            "면책조항 및 의료 상담 권장사항 포함",
        ),
        "en": (
            "Provide accurate and up-to-date medical information",
            "Follow E-E-A-T principles",
            "Include disclaimers and recommend a medical consultation",
        ),
    },
}


@dataclass(frozen=True)
class BuiltPrompt:
    """System and user prompt for one generation request."""

    system_prompt: str
    user_prompt: str
    content_type: ContentType
    search_intent: SearchIntent
    placeholders: tuple[str, ...]


def analyze_content_type(keyword: str) -> ContentType:
    for content_type, pattern in _CONTENT_TYPE_PATTERNS:
        if pattern.search(keyword):
            return content_type
    return ContentType.INFORMATIONAL


def analyze_search_intent(keyword: str) -> SearchIntent:
    for intent, pattern in _SEARCH_INTENT_PATTERNS:
        if pattern.search(keyword):
            return intent
    return SearchIntent.INFORMATIONAL


def image_placeholders(count: int) -> tuple[str, ...]:
    """Placeholder tokens for `count` images: [IMAGE_PLACEHOLDER_1] and on."""
    return tuple(PLACEHOLDER_TEMPLATE.format(index=i) for i in range(1, count + 1))


def best_practices_for(category: str, locale: str) -> tuple[str, ...]:
    by_locale = BEST_PRACTICES.get(category) or BEST_PRACTICES["general"]
    return by_locale.get(locale) or by_locale["en"]


def build_system_prompt(rules: LocaleRules) -> str:
    """Fixed system prompt for a locale."""
    korean_rule = (
        "- Korean is the target language"
        if rules.code == "ko"
        else "- Do not use Korean (Hangul) text except for clinic or place names"
    )
    return "\n".join(
        [
            "You are a medical tourism content writer for GetCareKorea, a service "
            "that connects international patients with Korean clinics through "
            "certified medical interpreters.",
            "",
            f"## LANGUAGE: 100% {rules.language_name} ({rules.native_name})",
            f"- Write the entire article in {rules.language_name}",
            korean_rule,
            f"- Open naturally, e.g. \"{rules.greeting}...\"",
            f"- Quote prices in USD and {rules.currency}",
            "",
            "## QUALITY RULES",
            "- Answer the search query directly in the first 40-60 words",
            "- Use semantic HTML: h2/h3 sections, p, ul/ol, table with thead/tbody",
            "- Never leave empty HTML elements",
            "- Include an FAQ section with 5-7 questions",
            "- Give specific numbers: prices, durations, recovery times",
            "- Medical claims must be accurate and carry a disclaimer",
            "",
            "## OUTPUT",
            "Respond with a single JSON object and nothing else.",
        ]
    )


def _category_section(category: str) -> str:
    guidance = CATEGORY_GUIDANCE.get(category)
    if guidance is None:
        return f"## CATEGORY: {category}"

    lines = [f"## CATEGORY: {guidance.display_name}", "", "### Trust signals to weave in:"]
    lines += [f"- {signal}" for signal in guidance.eeat_signals]
    lines += ["", "### Must cover:"]
    lines += [f"- {topic}" for topic in guidance.must_cover]
    lines += ["", "### Price benchmarks:", "| Procedure | Price range |", "|---|---|"]
    lines += [f"| {name} | {price} |" for name, price in guidance.price_benchmarks]
    lines += ["", f"### Disclaimer to include:\n\"{guidance.risk_disclaimer}\""]
    return "\n".join(lines)


def _persona_section(persona: AuthorProfile, locale: str) -> str:
    lines = [
        "## AUTHOR",
        f"- Name: {persona.name_for(locale)}",
        f"- Experience: {persona.years_of_experience} years",
        f"- Specialty: {persona.primary_specialty}",
        f"- Perspective: {persona.writing_perspective}",
        f"- Tone: {persona.writing_tone}",
    ]
    bio = persona.bio_for(locale)
    if bio:
        lines.append(f"- Bio: {bio}")
    return "\n".join(lines)


def _output_contract(placeholders: Sequence[str]) -> str:
    lines = [
        "## JSON OUTPUT FORMAT",
        "{",
        '  "title": "SEO title under 60 characters, keyword near the start",',
        '  "excerpt": "2-3 sentence summary",',
        '  "content": "Full article HTML",',
        '  "metaTitle": "Meta title under 60 characters",',
        '  "metaDescription": "Meta description under 155 characters",',
        '  "tags": ["tag1", "tag2"],',
        '  "faqSchema": [{"question": "...?", "answer": "..."}],',
    ]
    if placeholders:
        lines.append('  "images": [')
        for index, token in enumerate(placeholders):
            position = IMAGE_POSITIONS[min(index, len(IMAGE_POSITIONS) - 1)]
            comma = "," if index < len(placeholders) - 1 else ""
            lines.append(
                f'    {{"placeholder": "{token}", "position": "{position}", '
                f'"prompt": "Photorealistic scene description in English", '
                f'"alt": "Descriptive alt text including the keyword", '
                f'"caption": "Short caption"}}{comma}'
            )
        lines.append("  ]")
    else:
        lines.append('  "images": []')
    lines.append("}")

    if placeholders:
        tokens = ", ".join(placeholders)
        lines += [
            "",
            f"Place each of these tokens exactly once in \"content\", each in its own "
            f"paragraph like <p>{placeholders[0]}</p>: {tokens}",
        ]
    lines.append("Return ONLY the JSON object.")
    return "\n".join(lines)


def build_prompt(
    keyword: str,
    locale: str,
    category: str,
    persona: AuthorProfile,
    context_snippets: Sequence[str] = (),
    image_count: int = 3,
) -> BuiltPrompt:
    """Assemble the generation prompt.

    Args:
        keyword: Target search phrase
        locale: One of the supported locale codes
        category: Topical category of the keyword
        persona: Author voice to write in
        context_snippets: Retrieval context, in relevance order
        image_count: Number of image placeholders to request

    Returns:
        BuiltPrompt with system/user text and the analysed content type

    Raises:
        ValidationError: If the locale is not supported
    """
    rules = get_locale_rules(locale)
    content_type = analyze_content_type(keyword)
    search_intent = analyze_search_intent(keyword)
    placeholders = image_placeholders(max(image_count, 0))

    sections = [
        f'## TARGET KEYWORD: "{keyword}"',
        _category_section(category),
        "\n".join(
            [
                "## LOCALE",
                f"- Language: {rules.language_name} ({rules.native_name})",
                f"- Country: {rules.country}",
                f"- Greeting style: {rules.greeting}",
                f"- Contact CTA: {persona.cta_for(locale) or rules.cta_platform}",
            ]
        ),
        "\n".join(
            [
                "## CONTENT SPECIFICATIONS",
                f"- Target word count: {TARGET_WORD_COUNT}+ words",
                f"- Content type: {_CONTENT_TYPE_DESCRIPTIONS[content_type]}",
                f"- Search intent: {_SEARCH_INTENT_DESCRIPTIONS[search_intent]}",
                f"- Prompt version: {PROMPT_VERSION}",
                *(f"- {req}" for req in _TYPE_REQUIREMENTS[content_type]),
            ]
        ),
        _persona_section(persona, locale),
        "## BEST PRACTICES\n"
        + "\n".join(f"- {p}" for p in best_practices_for(category, locale)),
    ]

    snippets = [s.strip() for s in context_snippets if s and s.strip()]
    if snippets:
        sections.append(
            "## REFERENCE CONTEXT (prior high-performing content)\n"
            + "\n".join(f"{i}. {s}" for i, s in enumerate(snippets, start=1))
        )

    sections.append(_output_contract(placeholders))

    return BuiltPrompt(
        system_prompt=build_system_prompt(rules),
        user_prompt="\n\n".join(sections),
        content_type=content_type,
        search_intent=search_intent,
        placeholders=placeholders,
    )
