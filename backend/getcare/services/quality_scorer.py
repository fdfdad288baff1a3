"""Heuristic quality scoring for generated blog HTML.

Six components are scored 0-100 and combined with fixed weights:

    readability 0.20, seo 0.25, depth 0.20,
    structure 0.15, engagement 0.10, uniqueness 0.10

Deterministic and offline: no LLM calls. The overall score is what the
worker stores as a job's quality_score.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup

from getcare.core.logging import get_logger
from getcare.services.locales import LOCALE_RULES

logger = get_logger(__name__)

QUALITY_WEIGHTS = {
    "readability": 0.20,
    "seo": 0.25,
    "depth": 0.20,
    "structure": 0.15,
    "engagement": 0.10,
    "uniqueness": 0.10,
}
GRADE_THRESHOLDS = (("A", 90), ("B", 80), ("C", 70), ("D", 60))
DEFAULT_QUALITY_THRESHOLD = 70
MAX_SUGGESTIONS = 10

# (min, ideal, max) words, or characters / 2 for unspaced scripts
CONTENT_LENGTH_TARGETS: dict[str, tuple[int, int, int]] = {
    "en": (800, 1500, 3000),
    "ko": (600, 1200, 2500),
    "ja": (600, 1200, 2500),
    "zh-CN": (500, 1000, 2000),
    "zh-TW": (500, 1000, 2000),
    "th": (600, 1200, 2500),
    "mn": (500, 1000, 2000),
    "ru": (700, 1400, 2800),
}
UNSPACED_LOCALES = frozenset({"ja", "zh-CN", "zh-TW", "th"})
# Share of letters that must be in the locale's script
MIN_SCRIPT_RATIO = 0.3

STOP_WORDS = frozenset(
    "the a an and or but in on at to for of with by from as is are was were be "
    "have has had do does did will would could should may might can this that "
    "these those it its they their we our you your".split()
)
CTA_PATTERNS = (
    re.compile(r"상담.*받|문의.*하세요|예약"),
    re.compile(r"contact|learn more|get started|book.*(appointment|consultation)", re.I),
    re.compile(r"kakaotalk|whatsapp|wechat|\bline\b", re.I),
)
PERSONAL_ADDRESS = re.compile(r"당신|여러분|귀하|\byou\b|\byour\b|あなた|您|คุณ|вы\b", re.I)
CLICHES = (
    "needless to say",
    "it goes without saying",
    "at the end of the day",
    "말할 필요도 없이",
    "두말할 나위 없이",
    "결론적으로 말하자면",
)
FAQ_HEADING = re.compile(r"faq|frequently asked|자주 묻는|よくある質問|常见问题|常見問題|คำถามที่พบบ่อย|частые вопросы", re.I)
NUMBERS = re.compile(r"\d+%|\d+,\d+|\$\s?\d+|₩\s?\d+|\d+\s?(USD|KRW|won|weeks?|days?|hours?)", re.I)
_VOID_TAGS = frozenset({"img", "br", "hr", "input", "meta", "link", "source", "col"})
_SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class QualitySuggestion:
    category: str
    severity: str
    message: str
    recommendation: str

    def to_dict(self) -> dict[str, str]:
        return {
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
            "recommendation": self.recommendation,
        }


@dataclass
class QualityScoreResult:
    """Overall score, per-component breakdown and top suggestions."""

    overall_score: int
    grade: str
    breakdown: dict[str, int]
    suggestions: list[QualitySuggestion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "grade": self.grade,
            "breakdown": dict(self.breakdown),
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


@dataclass
class ContentInput:
    title: str
    content: str
    target_keyword: str
    target_locale: str
    excerpt: str = ""
    meta_description: str = ""
    tags: list[str] = field(default_factory=list)


class _Analysis:
    """Parsed view of the HTML shared by every component."""

    def __init__(self, data: ContentInput) -> None:
        soup = BeautifulSoup(data.content or "", "html.parser")
        self.data = data
        self.text = soup.get_text(" ", strip=True)
        self.h2 = [h.get_text(" ", strip=True) for h in soup.find_all("h2")]
        self.h3_count = len(soup.find_all("h3"))
        self.paragraphs = [
            p.get_text(" ", strip=True) for p in soup.find_all("p") if p.get_text(strip=True)
        ]
        self.list_count = len(soup.find_all(["ul", "ol"]))
        self.table_count = len(soup.find_all("table"))
        self.empty_elements = sum(
            1
            for tag in soup.find_all(True)
            if tag.name not in _VOID_TAGS
            and not tag.get_text(strip=True)
            and not tag.find(list(_VOID_TAGS))
        )
        self.words = self.text.split()
        self.word_count = self._word_count()

    def _word_count(self) -> int:
        if self.data.target_locale in UNSPACED_LOCALES:
            return len(re.sub(r"\s+", "", self.text)) // 2
        return len(self.words)


def _readability(a: _Analysis, out: list[QualitySuggestion]) -> int:
    score = 100
    sentences = [s for s in re.split(r"[.!?。！？]", a.text) if s.strip()]
    if sentences and a.data.target_locale not in UNSPACED_LOCALES:
        avg = sum(len(s.split()) for s in sentences) / len(sentences)
        ideal = 17 if a.data.target_locale == "en" else 12
        if avg > ideal + 10:
            score -= 15
            out.append(QualitySuggestion(
                "readability", "medium", "Sentences are too long",
                "Split long sentences to improve readability",
            ))
        elif avg < ideal - 8:
            score -= 10
            out.append(QualitySuggestion(
                "readability", "low", "Sentences are too short",
                "Combine some sentences for a more natural flow",
            ))

    if a.paragraphs and sum(len(p) for p in a.paragraphs) / len(a.paragraphs) > 500:
        score -= 10
        out.append(QualitySuggestion(
            "readability", "medium", "Paragraphs are too long",
            "Break long paragraphs into shorter ones",
        ))

    if a.words and sum(1 for w in a.words if len(w) > 12) / len(a.words) > 0.1:
        score -= 10
        out.append(QualitySuggestion(
            "readability", "low", "Many complex terms",
            "Explain technical terms or use simpler words",
        ))

    if not locale_script_matches(a.text, a.data.target_locale):
        score -= 40
        out.append(QualitySuggestion(
            "readability", "high", "Content is not in the target language",
            f"Rewrite the article in {a.data.target_locale}",
        ))
    return max(0, score)


def _seo(a: _Analysis, out: list[QualitySuggestion]) -> int:
    score = 100
    data = a.data
    keyword = data.target_keyword.lower().strip()
    title = data.title or ""

    if keyword and keyword not in title.lower():
        score -= 15
        out.append(QualitySuggestion(
            "seo", "high", "Target keyword missing from title",
            f'Include "{data.target_keyword}" in the title',
        ))
    if len(title) < 30:
        score -= 10
        out.append(QualitySuggestion(
            "seo", "medium", "Title is too short", "Aim for a 50-60 character title",
        ))
    elif len(title) > 70:
        score -= 5
        out.append(QualitySuggestion(
            "seo", "low", "Title is too long",
            "Keep the title under 60 characters so it is not truncated",
        ))

    if keyword:
        text_lower = a.text.lower()
        parts = [p for p in keyword.split() if p not in STOP_WORDS] or [keyword]
        if a.data.target_locale in UNSPACED_LOCALES:
            hits = text_lower.count(keyword)
            density = hits * len(keyword) / max(len(text_lower), 1) * 100
        else:
            words = text_lower.split()
            hits = sum(1 for w in words if keyword in w or any(p in w for p in parts))
            density = hits / max(len(words), 1) * 100
        if density < 0.5:
            score -= 15
            out.append(QualitySuggestion(
                "seo", "high", "Keyword density is too low",
                f'Use "{data.target_keyword}" more often in the body (1-3%)',
            ))
        elif density > 4:
            score -= 20
            out.append(QualitySuggestion(
                "seo", "high", "Keyword density is too high (stuffing risk)",
                "Use synonyms and related phrases instead of repeating the keyword",
            ))

    meta = data.meta_description or ""
    if not meta:
        score -= 10
        out.append(QualitySuggestion(
            "seo", "medium", "Meta description is missing",
            "Add a 120-160 character meta description",
        ))
    elif not 100 <= len(meta) <= 170:
        score -= 5
        out.append(QualitySuggestion(
            "seo", "low", "Meta description length is not optimal",
            "Keep it between 120 and 160 characters",
        ))

    if len(data.excerpt or "") < 50:
        score -= 5
        out.append(QualitySuggestion(
            "seo", "low", "Excerpt is missing or too short",
            "Write a 100-200 character excerpt",
        ))
    if len(data.tags) < 3:
        score -= 5
        out.append(QualitySuggestion(
            "seo", "low", "Too few tags", "Add 3-5 relevant tags",
        ))
    return max(0, score)


def _depth(a: _Analysis, out: list[QualitySuggestion]) -> int:
    score = 100
    minimum, ideal, maximum = CONTENT_LENGTH_TARGETS.get(
        a.data.target_locale, CONTENT_LENGTH_TARGETS["en"]
    )
    if a.word_count < minimum:
        score -= 30
        out.append(QualitySuggestion(
            "depth", "high", f"Content is too short ({a.word_count} words)",
            f"Write at least {minimum} words",
        ))
    elif a.word_count < ideal:
        score -= 10
        out.append(QualitySuggestion(
            "depth", "medium", "Content is shorter than ideal",
            f"Around {ideal} words is ideal",
        ))
    elif a.word_count > maximum:
        score -= 5
        out.append(QualitySuggestion(
            "depth", "low", "Content is very long", "Tighten the article to its key points",
        ))

    if not NUMBERS.search(a.text):
        score -= 10
        out.append(QualitySuggestion(
            "depth", "medium", "No concrete numbers or statistics",
            "Add prices, durations or success rates",
        ))
    if a.list_count == 0 and a.table_count == 0:
        score -= 5
        out.append(QualitySuggestion(
            "depth", "low", "No lists or tables",
            "Summarize key facts in a list or table",
        ))
    if "?" not in a.text and "？" not in a.text:
        score -= 5
    return max(0, score)


def _structure(a: _Analysis, out: list[QualitySuggestion]) -> int:
    score = 100
    if not a.h2:
        score -= 20
        out.append(QualitySuggestion(
            "structure", "high", "No H2 headings",
            "Split the article into sections with H2 headings",
        ))
        if a.h3_count:
            score -= 10
            out.append(QualitySuggestion(
                "structure", "medium", "Heading hierarchy is broken",
                "Use H2 before H3",
            ))
    elif len(a.h2) < 3:
        score -= 10
        out.append(QualitySuggestion(
            "structure", "medium", "Too few sections", "Organize the article into 3-5 sections",
        ))

    if not any(FAQ_HEADING.search(h) for h in a.h2):
        score -= 10
        out.append(QualitySuggestion(
            "structure", "medium", "No FAQ section", "Add an FAQ section with 5-7 questions",
        ))

    if a.empty_elements:
        score -= min(20, 5 * a.empty_elements)
        out.append(QualitySuggestion(
            "structure", "high" if a.empty_elements > 2 else "medium",
            f"{a.empty_elements} empty HTML element(s)",
            "Remove empty tags or fill them with content",
        ))

    if len(a.paragraphs) < 5:
        score -= 10
        out.append(QualitySuggestion(
            "structure", "medium", "Too few paragraphs", "Break the content into more paragraphs",
        ))
    if a.paragraphs:
        if len(a.paragraphs[0]) < 100:
            score -= 5
            out.append(QualitySuggestion(
                "structure", "low", "Introduction is too short",
                "Open with a paragraph that answers the query directly",
            ))
        if len(a.paragraphs[-1]) < 50:
            score -= 5
            out.append(QualitySuggestion(
                "structure", "low", "Conclusion is weak", "End with a short summary and next step",
            ))
    return max(0, score)


def _engagement(a: _Analysis, out: list[QualitySuggestion]) -> int:
    score = 100
    if not any(p.search(a.text) for p in CTA_PATTERNS):
        score -= 15
        out.append(QualitySuggestion(
            "engagement", "medium", "No call to action",
            "Tell the reader how to get a consultation",
        ))
    if not PERSONAL_ADDRESS.search(a.text):
        score -= 10
        out.append(QualitySuggestion(
            "engagement", "low", "Reader is never addressed directly",
            "Speak to the reader as 'you'",
        ))
    lowered = a.text.lower()
    if not any(w in lowered for w in ("safe", "trust", "expert", "안전", "신뢰", "전문")):
        score -= 5
    return max(0, score)


def _uniqueness(a: _Analysis, out: list[QualitySuggestion]) -> int:
    score = 100
    words = [w for w in a.text.lower().split() if len(w) > 3 and w not in STOP_WORDS]
    if words:
        ratio = len(set(words)) / len(words)
        if ratio < 0.3:
            score -= 20
            out.append(QualitySuggestion(
                "uniqueness", "medium", "Low vocabulary variety", "Vary wording with synonyms",
            ))
        elif ratio < 0.5:
            score -= 10
            out.append(QualitySuggestion(
                "uniqueness", "low", "Words repeat often", "Rephrase repeated words",
            ))
    lowered = a.text.lower()
    if any(c in lowered for c in CLICHES):
        score -= 5
        out.append(QualitySuggestion(
            "uniqueness", "low", "Contains cliches", "Replace stock phrases with specifics",
        ))
    return max(0, score)


def locale_script_matches(text: str, locale: str) -> bool:
    """True when text is plausibly written in the locale's script.

    Locales written in Latin script always match.
    """
    rules = LOCALE_RULES.get(locale)
    if rules is None or rules.script_regex is None:
        return True
    letters = [c for c in text if c.isalpha()]
    if not letters:
        return True
    in_script = len(rules.script_regex.findall(text))
    return in_script / len(letters) >= MIN_SCRIPT_RATIO


def grade_for(score: int) -> str:
    for grade, threshold in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def calculate_quality_score(data: ContentInput) -> QualityScoreResult:
    """Score one article."""
    analysis = _Analysis(data)
    suggestions: list[QualitySuggestion] = []
    breakdown = {
        "readability": _readability(analysis, suggestions),
        "seo": _seo(analysis, suggestions),
        "depth": _depth(analysis, suggestions),
        "structure": _structure(analysis, suggestions),
        "engagement": _engagement(analysis, suggestions),
        "uniqueness": _uniqueness(analysis, suggestions),
    }
    overall = round(sum(breakdown[name] * weight for name, weight in QUALITY_WEIGHTS.items()))
    suggestions.sort(key=lambda s: _SEVERITY_ORDER[s.severity])

    result = QualityScoreResult(
        overall_score=overall,
        grade=grade_for(overall),
        breakdown=breakdown,
        suggestions=suggestions[:MAX_SUGGESTIONS],
    )
    logger.debug(
        "Quality score calculated",
        extra={
            "keyword": data.target_keyword[:100],
            "locale": data.target_locale,
            "overall_score": overall,
            "grade": result.grade,
            "empty_elements": analysis.empty_elements,
        },
    )
    return result


def meets_quality_threshold(
    score: QualityScoreResult | int | float, threshold: float = DEFAULT_QUALITY_THRESHOLD
) -> bool:
    value = score.overall_score if isinstance(score, QualityScoreResult) else score
    return value >= threshold
