"""Fixed locale set and the per-locale rules the pipeline writes against."""

import re
from dataclasses import dataclass

from getcare.core.errors import ValidationError


@dataclass(frozen=True)
class LocaleRules:
    """Language, market and messenger conventions for one locale."""

    code: str
    language_name: str
    native_name: str
    country: str
    greeting: str
    cta_platform: str
    currency: str
    script_pattern: str | None = None

    @property
    def script_regex(self) -> re.Pattern[str] | None:
        """Characters a body written in this locale must contain, if any."""
        return re.compile(self.script_pattern) if self.script_pattern else None


LOCALE_RULES: dict[str, LocaleRules] = {
    "ko": LocaleRules(
        code="ko",
        language_name="Korean",
        native_name="한국어",
        country="KR",
        greeting="안녕하세요",
        cta_platform="KakaoTalk",
        currency="KRW",
        script_pattern=r"[가-힣]",
    ),
    "en": LocaleRules(
        code="en",
        language_name="English",
        native_name="English",
        country="US",
        greeting="Hello",
        cta_platform="WhatsApp",
        currency="USD",
    ),
    "ja": LocaleRules(
        code="ja",
        language_name="Japanese",
        native_name="日本語",
        country="JP",
        greeting="こんにちは",
        cta_platform="LINE",
        currency="JPY",
        script_pattern=r"[぀-ヿ]",
    ),
    "zh-CN": LocaleRules(
        code="zh-CN",
        language_name="Simplified Chinese",
        native_name="简体中文",
        country="CN",
        greeting="您好",
        cta_platform="WeChat",
        currency="CNY",
        script_pattern=r"[一-鿿]",
    ),
    "zh-TW": LocaleRules(
        code="zh-TW",
        language_name="Traditional Chinese",
        native_name="繁體中文",
        country="TW",
        greeting="您好",
        cta_platform="LINE",
        currency="TWD",
        script_pattern=r"[一-鿿]",
    ),
    "th": LocaleRules(
        code="th",
        language_name="Thai",
        native_name="ไทย",
        country="TH",
        greeting="สวัสดี",
        cta_platform="LINE",
        currency="THB",
        script_pattern=r"[฀-๿]",
    ),
    "mn": LocaleRules(
        code="mn",
        language_name="Mongolian",
        native_name="Монгол",
        country="MN",
        greeting="Сайн байна уу",
        cta_platform="WhatsApp",
        currency="MNT",
        script_pattern=r"[Ѐ-ӿ]",
    ),
    "ru": LocaleRules(
        code="ru",
        language_name="Russian",
        native_name="Русский",
        country="RU",
        greeting="Здравствуйте",
        cta_platform="WhatsApp",
        currency="RUB",
        script_pattern=r"[Ѐ-ӿ]",
    ),
}

VALID_LOCALES: tuple[str, ...] = tuple(LOCALE_RULES)


def is_valid_locale(locale: str) -> bool:
    return locale in LOCALE_RULES


def get_locale_rules(locale: str) -> LocaleRules:
    """Rules for a locale.

    Raises:
        ValidationError: If the locale is not one of VALID_LOCALES
    """
    rules = LOCALE_RULES.get(locale)
    if rules is None:
        raise ValidationError(
            f"Invalid locale: {locale!r}. Must be one of {', '.join(VALID_LOCALES)}",
            field="locale",
            value=locale,
        )
    return rules


def country_for_locale(locale: str) -> str | None:
    rules = LOCALE_RULES.get(locale)
    return rules.country if rules else None
