"""Author persona selection for generated posts.

Selection rules, applied to active personas:
1. Personas speaking the keyword's locale; else those speaking 'en'; else all.
2. Within that pool prefer primary_specialty == category, then personas
   listing the category among secondary_specialties, else the whole pool.
3. Lowest total_posts wins (round robin); ties break on slug.

With no personas at all the built-in editorial persona is used, so a
missing persona never fails a pipeline run.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from getcare.core.cache import TTLCache
from getcare.core.logging import get_logger
from getcare.models.author_persona import AuthorPersona
from getcare.repositories.persona import PersonaRepository

logger = get_logger(__name__)

DEFAULT_PERSONA_SLUG = "getcare-editorial"
PERSONA_CACHE_KEY = "personas:active"


def _localized(values: dict[str, Any], locale: str, fallback: str = "") -> str:
    """Pick a localized value: exact locale, then English, then anything."""
    for key in (locale, "en"):
        value = values.get(key)
        if isinstance(value, str) and value.strip():
            return value
    for value in values.values():
        if isinstance(value, str) and value.strip():
            return value
    return fallback


@dataclass
class AuthorProfile:
    """Detached snapshot of a persona, safe to cache across sessions."""

    id: str | None
    slug: str
    names: dict[str, str] = field(default_factory=dict)
    bios: dict[str, str] = field(default_factory=dict)
    years_of_experience: int = 5
    primary_specialty: str = "general"
    secondary_specialties: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    writing_tone: str = "warm and professional"
    writing_perspective: str = "medical interpreter"
    messenger_cta: dict[str, str] = field(default_factory=dict)
    total_posts: int = 0

    @property
    def is_default(self) -> bool:
        return self.id is None

    def name_for(self, locale: str) -> str:
        return _localized(self.names, locale, fallback=self.slug)

    def bio_for(self, locale: str) -> str:
        return _localized(self.bios, locale)

    def cta_for(self, locale: str) -> str:
        return _localized(self.messenger_cta, locale)

    @classmethod
    def from_model(cls, persona: AuthorPersona) -> "AuthorProfile":
        return cls(
            id=persona.id,
            slug=persona.slug,
            names=dict(persona.names or {}),
            bios=dict(persona.bios or {}),
            years_of_experience=persona.years_of_experience,
            primary_specialty=persona.primary_specialty,
            secondary_specialties=list(persona.secondary_specialties or []),
            languages=list(persona.languages or []),
            writing_tone=persona.writing_tone,
            writing_perspective=persona.writing_perspective,
            messenger_cta=dict(persona.messenger_cta or {}),
            total_posts=persona.total_posts,
        )


DEFAULT_PERSONA = AuthorProfile(
    id=None,
    slug=DEFAULT_PERSONA_SLUG,
    names={"en": "GetCareKorea Editorial Team", "ko": "겟케어코리아 편집팀"},
    bios={
        "en": (
            "The GetCareKorea editorial team works with certified medical "
            "interpreters in Seoul to help international patients plan "
            "treatment in Korea."
        ),
        "ko": "겟케어코리아 편집팀은 서울의 의료통역사와 함께 해외 환자의 한국 치료 계획을 돕습니다.",
    },
    years_of_experience=10,
    primary_specialty="general",
    languages=["en", "ko"],
    writing_tone="warm and professional",
    writing_perspective="medical tourism coordinator",
)


def select_persona(
    personas: Sequence[AuthorProfile], locale: str, category: str | None
) -> AuthorProfile | None:
    """Apply the selection rules; None when there are no personas."""
    if not personas:
        return None

    pool = [p for p in personas if locale in p.languages]
    if not pool:
        pool = [p for p in personas if "en" in p.languages]
    if not pool:
        pool = list(personas)

    if category:
        primary = [p for p in pool if p.primary_specialty == category]
        secondary = [p for p in pool if category in p.secondary_specialties]
        pool = primary or secondary or pool

    return min(pool, key=lambda p: (p.total_posts, p.slug))


class PersonaService:
    """Resolves the persona for a keyword, with the active list memoised."""

    def __init__(self, cache: TTLCache | None = None, cache_ttl: float = 300.0) -> None:
        self._cache = cache
        self._cache_ttl = cache_ttl

    async def _load(self, session: AsyncSession) -> list[AuthorProfile]:
        rows = await PersonaRepository(session).list_active()
        return [AuthorProfile.from_model(row) for row in rows]

    async def list_active(self, session: AsyncSession) -> list[AuthorProfile]:
        """Active personas, served from the cache when possible."""
        if self._cache is None:
            return await self._load(session)

        async def factory() -> list[AuthorProfile] | None:
            # Empty results are not cached so new personas show up immediately
            return await self._load(session) or None

        return await self._cache.get_or_set(
            PERSONA_CACHE_KEY, factory, ttl=self._cache_ttl
        ) or []

    async def resolve(
        self, session: AsyncSession, locale: str, category: str | None
    ) -> AuthorProfile:
        """Persona to write as; DEFAULT_PERSONA when none is usable."""
        try:
            personas = await self.list_active(session)
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to load author personas, using default persona",
                extra={
                    "locale": locale,
                    "category": category,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            return DEFAULT_PERSONA

        selected = select_persona(personas, locale, category)
        if selected is None:
            logger.info(
                "No author personas configured, using default persona",
                extra={"locale": locale, "category": category},
            )
            return DEFAULT_PERSONA

        logger.debug(
            "Author persona selected",
            extra={
                "persona_slug": selected.slug,
                "locale": locale,
                "category": category,
                "total_posts": selected.total_posts,
            },
        )
        return selected

    async def record_usage(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        persona: AuthorProfile,
    ) -> None:
        """Best-effort increment of the persona's usage counter."""
        if persona.is_default:
            return
        try:
            async with session_factory() as session:
                await PersonaRepository(session).increment_usage(persona.id)  # type: ignore[arg-type]
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to increment persona usage counter",
                extra={
                    "persona_id": persona.id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            return

        if self._cache is not None:
            # Round robin depends on fresh counters
            self._cache.delete(PERSONA_CACHE_KEY)
