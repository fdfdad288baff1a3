"""Tests for author persona selection.

Tests cover:
- Language, specialty and round-robin selection rules
- Fallback to the default editorial persona
- Active persona list memoised in the TTL cache
- Usage counter increments invalidate the cache
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from getcare.core.cache import TTLCache
from getcare.models.author_persona import AuthorPersona
from getcare.services.author_persona import (
    DEFAULT_PERSONA,
    PERSONA_CACHE_KEY,
    AuthorProfile,
    PersonaService,
    select_persona,
)


def profile(
    slug: str,
    languages: list[str],
    primary: str = "general",
    secondary: list[str] | None = None,
    total_posts: int = 0,
) -> AuthorProfile:
    return AuthorProfile(
        id=slug,
        slug=slug,
        languages=languages,
        primary_specialty=primary,
        secondary_specialties=secondary or [],
        total_posts=total_posts,
    )


class TestSelectPersona:
    """Tests for the selection rules."""

    def test_empty(self) -> None:
        assert select_persona([], "en", "dental") is None

    def test_locale_speakers_preferred(self) -> None:
        """Personas speaking the keyword locale are preferred."""
        personas = [profile("a-en", ["en"]), profile("b-ja", ["ja"])]
        assert select_persona(personas, "ja", None).slug == "b-ja"

    def test_english_fallback(self) -> None:
        """English speakers are the fallback for an uncovered locale."""
        personas = [profile("a-ko", ["ko"]), profile("b-en", ["en"])]
        assert select_persona(personas, "th", None).slug == "b-en"

    def test_any_persona_as_last_resort(self) -> None:
        personas = [profile("a-ko", ["ko"])]
        assert select_persona(personas, "th", None).slug == "a-ko"

    def test_primary_specialty_before_secondary(self) -> None:
        """A primary specialty match beats a secondary one."""
        personas = [
            profile("a", ["en"], secondary=["dental"]),
            profile("b", ["en"], primary="dental", total_posts=10),
        ]
        assert select_persona(personas, "en", "dental").slug == "b"

    def test_secondary_specialty_before_rest(self) -> None:
        personas = [
            profile("a", ["en"]),
            profile("b", ["en"], secondary=["dermatology"], total_posts=3),
        ]
        assert select_persona(personas, "en", "dermatology").slug == "b"

    def test_round_robin_by_total_posts_then_slug(self) -> None:
        """The least-used persona wins and ties break on slug."""
        personas = [
            profile("c", ["en"], total_posts=2),
            profile("b", ["en"], total_posts=1),
            profile("a", ["en"], total_posts=1),
        ]
        assert select_persona(personas, "en", None).slug == "a"


class TestLocalizedFields:
    """Tests for localized name, bio and CTA lookups."""

    def test_fallback_chain(self) -> None:
        """Missing translations fall back to English, then to any language."""
        persona = AuthorProfile(
            id="x",
            slug="min-ji",
            names={"ko": "김민지", "en": "Min-ji Kim"},
            bios={"ja": "通訳者"},
        )
        assert persona.name_for("ko") == "김민지"
        assert persona.name_for("th") == "Min-ji Kim"
        assert persona.bio_for("ru") == "通訳者"
        assert persona.cta_for("en") == ""

    def test_default_persona(self) -> None:
        assert DEFAULT_PERSONA.is_default is True
        assert DEFAULT_PERSONA.slug == "getcare-editorial"


class TestPersonaService:
    """Tests for database-backed resolution."""

    @pytest.mark.asyncio
    async def test_default_when_no_personas(self, db_session: AsyncSession) -> None:
        """An empty persona table resolves to the default persona."""
        persona = await PersonaService().resolve(db_session, "en", "dental")
        assert persona is DEFAULT_PERSONA

    @pytest.mark.asyncio
    async def test_inactive_personas_ignored(
        self, db_session: AsyncSession, make_persona
    ) -> None:
        """Inactive personas are never selected."""
        await make_persona("retired", ["en"], is_active=False)
        persona = await PersonaService().resolve(db_session, "en", None)
        assert persona is DEFAULT_PERSONA

    @pytest.mark.asyncio
    async def test_resolves_matching_persona(
        self, db_session: AsyncSession, make_persona
    ) -> None:
        await make_persona("general-en", ["en"])
        await make_persona("dental-en", ["en"], primary_specialty="dental")

        persona = await PersonaService().resolve(db_session, "en", "dental")

        assert persona.slug == "dental-en"
        assert persona.is_default is False

    @pytest.mark.asyncio
    async def test_active_list_cached(
        self, db_session: AsyncSession, make_persona
    ) -> None:
        """The active persona list is served from cache after the first lookup."""
        cache = TTLCache()
        service = PersonaService(cache=cache)
        await make_persona("first", ["en"])

        await service.resolve(db_session, "en", None)
        await make_persona("second", ["en"])
        personas = await service.list_active(db_session)

        assert [p.slug for p in personas] == ["first"]
        assert PERSONA_CACHE_KEY in cache

    @pytest.mark.asyncio
    async def test_empty_list_not_cached(self, db_session: AsyncSession) -> None:
        """An empty result is not cached so new personas show up immediately."""
        cache = TTLCache()
        await PersonaService(cache=cache).resolve(db_session, "en", None)
        assert PERSONA_CACHE_KEY not in cache

    @pytest.mark.asyncio
    async def test_record_usage_increments_and_invalidates(
        self,
        db_session: AsyncSession,
        make_persona,
        async_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """record_usage increments total_posts and drops the cached list."""
        cache = TTLCache()
        service = PersonaService(cache=cache)
        persona_id = await make_persona("busy", ["en"], total_posts=4)
        persona = await service.resolve(db_session, "en", None)

        await service.record_usage(async_session_factory, persona)

        assert PERSONA_CACHE_KEY not in cache
        async with async_session_factory() as session:
            row = await session.get(AuthorPersona, persona_id)
            assert row.total_posts == 5

    @pytest.mark.asyncio
    async def test_record_usage_skips_default(
        self, async_session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """The default persona has no row to update."""
        await PersonaService().record_usage(async_session_factory, DEFAULT_PERSONA)
