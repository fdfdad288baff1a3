"""Single-keyword content generation pipeline.

ContentPipeline.run() takes one keyword from 'pending' to a persisted blog
post. Steps run strictly in order:

1. Move the keyword to 'generating' (committed immediately)
2. Fetch retrieval context (optional, failures are ignored)
3. Resolve the author persona (falls back to the default persona)
4. Build the prompt
5. Call the LLM and parse the JSON it returns
6. Generate images and inject them into the HTML (partial failure is fine)
7. Insert the post row and link it from the keyword in one transaction

Any fatal error in steps 2-7 rolls the keyword back to 'pending' with a
truncated error message, in a fresh session so a broken content
transaction cannot block it. Callers always receive a PipelineResult.

ERROR LOGGING REQUIREMENTS:
- Log run start/finish with keyword_id, run_id and timing
- Log each step at DEBUG level
- Log every keyword status transition at INFO level
- Log rollbacks, and failed rollbacks with full stack trace
"""

import re
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from getcare.core.config import Settings, get_settings
from getcare.core.errors import (
    GenerationError,
    NotFoundError,
    PersistenceError,
    PipelineError,
    ValidationError,
)
from getcare.core.logging import get_logger, pipeline_logger
from getcare.integrations.claude import LLMClient
from getcare.integrations.images import ImageClient
from getcare.integrations.retrieval import RetrievalProvider
from getcare.models.keyword import KeywordStatus
from getcare.repositories.keyword import KeywordRepository
from getcare.repositories.post import PostRepository
from getcare.services.author_persona import AuthorProfile, PersonaService
from getcare.services.content_assembler import (
    GeneratedImage,
    ImageContext,
    generate_images,
    inject_images_into_html,
)
from getcare.services.content_parsing import (
    GeneratedContent,
    ImagePlan,
    parse_generated_content,
)
from getcare.services.locales import country_for_locale, get_locale_rules
from getcare.services.prompt_builder import build_prompt
from getcare.services.quality_scorer import ContentInput, calculate_quality_score

logger = get_logger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9가-힣぀-ヿ一-鿿]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
SLUG_TITLE_MAX_LENGTH = 50


@dataclass
class PipelineOptions:
    include_retrieval_context: bool = True
    include_images: bool = True
    image_count: int | None = None
    auto_publish: bool = False


@dataclass
class PipelineResult:
    """Outcome of one run(). Never raised, always returned."""

    success: bool
    keyword_id: str | None = None
    blog_post_id: str | None = None
    title: str | None = None
    images_generated: int = 0
    total_cost: float = 0.0
    quality_score: float | None = None
    error: str | None = None
    error_category: str | None = None
    validation_errors: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)
    already_in_progress: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def make_slug(title: str, locale: str, timestamp_ms: int | None = None) -> str:
    """<sanitized title>-<locale>-<base36 ms timestamp>."""
    base = _SLUG_STRIP.sub("-", title.lower()).strip("-")
    base = base[:SLUG_TITLE_MAX_LENGTH].strip("-") or "post"
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{base}-{locale.lower()}-{_base36(timestamp_ms)}"


class ContentPipeline:
    """Runs keywords through generation using injected clients."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        llm: LLMClient,
        personas: PersonaService,
        images: ImageClient | None = None,
        retrieval: RetrievalProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._llm = llm
        self._personas = personas
        self._images = images
        self._retrieval = retrieval
        self._settings = settings or get_settings()

    def _image_count(self, options: PipelineOptions) -> int:
        if not options.include_images:
            return 0
        count = (
            options.image_count
            if options.image_count is not None
            else self._settings.pipeline_default_image_count
        )
        return max(0, min(count, self._settings.pipeline_max_image_count))

    @staticmethod
    def _select_image_plans(
        html: str, generated: GeneratedContent, image_count: int
    ) -> tuple[list[ImagePlan], list[dict[str, str]]]:
        """Split plans into those to render and those reported as failures.

        A plan is rendered only when its token occurs in the body and it
        falls within image_count. Every other plan becomes an error entry.
        """
        plans: list[ImagePlan] = []
        errors: list[dict[str, str]] = []
        for plan in generated.images:
            if plan.placeholder not in html:
                errors.append(
                    {"placeholder": plan.placeholder, "error": "Placeholder not found in content"}
                )
            elif len(plans) >= image_count:
                errors.append({"placeholder": plan.placeholder, "error": "exceeds image_count"})
            else:
                plans.append(plan)
        return plans, errors

    def _error_message(self, error: PipelineError) -> str:
        message = f"{error.category}: {error.message}"
        return message[: self._settings.pipeline_error_message_max_length]

    async def run(self, keyword_id: str, options: PipelineOptions | None = None) -> PipelineResult:
        """Generate and persist a post for one keyword.

        Args:
            keyword_id: UUID of the keyword to generate for
            options: Retrieval, image and publishing switches

        Returns:
            PipelineResult; success=False carries error and error_category
        """
        options = options or PipelineOptions()
        run_id = uuid4().hex[:12]
        start_time = time.monotonic()

        try:
            if not keyword_id:
                raise ValidationError("keyword_id is required", field="keyword_id")

            async with self._session_factory() as session:
                repo = KeywordRepository(session)
                keyword = await repo.get(keyword_id)
                if keyword is None:
                    raise NotFoundError("Keyword", keyword_id)
                if not keyword.text or not keyword.text.strip():
                    raise ValidationError("Keyword text is empty", field="text")
                get_locale_rules(keyword.locale)

                text, locale, category = keyword.text, keyword.locale, keyword.category
                taken = await repo.start_generating(keyword_id)
                await session.commit()

        except PipelineError as e:
            # Nothing was mutated yet
            return self._fail(run_id, keyword_id, e, start_time)

        if not taken:
            logger.info(
                "Keyword already generating, skipping run",
                extra={"run_id": run_id, "keyword_id": keyword_id},
            )
            return PipelineResult(
                success=False,
                keyword_id=keyword_id,
                error="Keyword is already being generated",
                error_category="AlreadyInProgressError",
                already_in_progress=True,
            )

        pipeline_logger.run_start(run_id, keyword_id, text, locale)
        try:
            result = await self._generate(run_id, keyword_id, text, locale, category, options)
        except PipelineError as e:
            await self._rollback(keyword_id, self._error_message(e))
            return self._fail(run_id, keyword_id, e, start_time)
        except Exception as e:
            await self._rollback(keyword_id, f"UnexpectedError: {type(e).__name__}: {e}")
            raise

        pipeline_logger.run_success(
            run_id,
            keyword_id,
            result.blog_post_id or "",
            result.images_generated,
            result.total_cost,
            (time.monotonic() - start_time) * 1000,
        )
        return result

    async def _generate(
        self,
        run_id: str,
        keyword_id: str,
        text: str,
        locale: str,
        category: str,
        options: PipelineOptions,
    ) -> PipelineResult:
        image_count = self._image_count(options)

        snippets: list[str] = []
        if options.include_retrieval_context and self._retrieval is not None:
            pipeline_logger.step(run_id, "retrieval")
            try:
                snippets = await self._retrieval.search(text, locale, category)
            except Exception as e:
                logger.warning(
                    "Retrieval context unavailable, continuing without it",
                    extra={"run_id": run_id, "keyword_id": keyword_id, "error": str(e)},
                )
                snippets = []

        pipeline_logger.step(run_id, "persona")
        async with self._session_factory() as session:
            persona = await self._personas.resolve(session, locale, category)

        pipeline_logger.step(run_id, "prompt", persona_slug=persona.slug, snippets=len(snippets))
        prompt = build_prompt(
            keyword=text,
            locale=locale,
            category=category,
            persona=persona,
            context_snippets=snippets,
            image_count=image_count,
        )

        pipeline_logger.step(run_id, "llm", content_type=prompt.content_type.value)
        completion = await self._llm.complete(
            prompt.user_prompt,
            system_prompt=prompt.system_prompt,
            max_tokens=self._settings.claude_max_tokens,
            temperature=self._settings.claude_temperature,
        )
        if not completion.success or not completion.text:
            raise GenerationError(
                completion.error or "LLM returned an empty response",
                status_code=completion.status_code,
            )

        pipeline_logger.step(run_id, "parse", response_length=len(completion.text))
        generated = parse_generated_content(completion.text, include_images=image_count > 0)

        content_cost = self._llm.estimate_cost(completion.input_tokens, completion.output_tokens)
        if snippets:
            content_cost += self._settings.retrieval_cost

        images: list[GeneratedImage] = []
        image_cost = 0.0
        image_errors: list[dict[str, str]] = []
        html = generated.content
        if image_count > 0:
            plans, image_errors = self._select_image_plans(html, generated, image_count)
            pipeline_logger.step(run_id, "images", planned=len(plans))
            if self._images is None:
                image_errors += [
                    {"placeholder": p.placeholder, "error": "Image generation not configured"}
                    for p in plans
                ]
            else:
                outcome = await generate_images(
                    self._images,
                    plans,
                    ImageContext(keyword=text, size=self._settings.image_aspect_ratio),
                    concurrency=self._settings.image_concurrency,
                )
                images, image_cost = outcome.images, outcome.total_cost
                image_errors += outcome.errors
                html = inject_images_into_html(html, images)

        quality = calculate_quality_score(
            ContentInput(
                title=generated.title,
                content=html,
                target_keyword=text,
                target_locale=locale,
                excerpt=generated.excerpt,
                meta_description=generated.meta_description,
                tags=generated.tags,
            )
        )
        total_cost = round(content_cost + image_cost, 4)

        pipeline_logger.step(run_id, "persist")
        post_id = await self._persist(
            keyword_id=keyword_id,
            text=text,
            locale=locale,
            category=category,
            generated=generated,
            html=html,
            images=images,
            image_errors=image_errors,
            persona=persona,
            content_cost=content_cost,
            image_cost=image_cost,
            total_cost=total_cost,
            quality_score=quality.overall_score,
            publish=options.auto_publish,
        )

        await self._personas.record_usage(self._session_factory, persona)

        if image_errors:
            logger.warning(
                "Post persisted with missing images",
                extra={
                    "run_id": run_id,
                    "keyword_id": keyword_id,
                    "post_id": post_id,
                    "failed_placeholders": [e["placeholder"] for e in image_errors],
                },
            )

        return PipelineResult(
            success=True,
            keyword_id=keyword_id,
            blog_post_id=post_id,
            title=generated.title,
            images_generated=len(images),
            total_cost=total_cost,
            quality_score=float(quality.overall_score),
            errors=image_errors,
        )

    async def _persist(
        self,
        *,
        keyword_id: str,
        text: str,
        locale: str,
        category: str,
        generated: GeneratedContent,
        html: str,
        images: list[GeneratedImage],
        image_errors: list[dict[str, str]],
        persona: AuthorProfile,
        content_cost: float,
        image_cost: float,
        total_cost: float,
        quality_score: int,
        publish: bool,
    ) -> str:
        now = datetime.now(UTC)
        cover = images[0] if images else None
        seo_meta = {
            "meta_title": generated.meta_title,
            "meta_description": generated.meta_description,
            "og_title": generated.meta_title,
            "og_description": generated.meta_description,
            "og_image": cover.url if cover else None,
            "twitter_title": generated.meta_title,
            "twitter_description": generated.meta_description,
            "twitter_image": cover.url if cover else None,
        }
        generation_metadata = {
            "keyword": text,
            "locale": locale,
            "category": category,
            "generation_cost": total_cost,
            "content_cost": round(content_cost, 4),
            "image_cost": round(image_cost, 4),
            "images_generated": len(images),
            "image_errors": image_errors,
            "faq_schema": generated.faq_schema,
            "author_persona_id": persona.id,
            "author_slug": persona.slug,
            "quality_score": quality_score,
            "generated_at": now.isoformat(),
        }

        try:
            async with self._session_factory() as session:
                post = await PostRepository(session).insert(
                    slug=make_slug(generated.title, locale),
                    target_locale=locale,
                    target_country=country_for_locale(locale),
                    title=generated.title,
                    excerpt=generated.excerpt or None,
                    content=html,
                    category=category,
                    tags=generated.tags,
                    keywords=[text],
                    status="published" if publish else "draft",
                    published_at=now if publish else None,
                    author_persona_id=persona.id,
                    cover_image_url=cover.url if cover else None,
                    cover_image_alt=cover.alt if cover else None,
                    seo_meta=seo_meta,
                    generation_metadata=generation_metadata,
                )
                post_id = post.id
                linked = await KeywordRepository(session).mark_generated(
                    keyword_id, post_id, published=publish
                )
                if not linked:
                    raise PersistenceError(f"Keyword disappeared during generation: {keyword_id}")
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save post: {type(e).__name__}: {e}") from e
        return post_id

    async def _rollback(self, keyword_id: str, error_message: str) -> None:
        """Best-effort return of the keyword to 'pending'."""
        try:
            async with self._session_factory() as session:
                await KeywordRepository(session).rollback_to_pending(keyword_id, error_message)
                await session.commit()
        except SQLAlchemyError:
            pipeline_logger.rollback(keyword_id, error_message, success=False)
            logger.error(
                "Keyword left in generating after failed rollback",
                extra={"keyword_id": keyword_id, "status": KeywordStatus.GENERATING.value},
                exc_info=True,
            )
            return
        pipeline_logger.rollback(keyword_id, error_message, success=True)

    def _fail(
        self, run_id: str, keyword_id: str | None, error: PipelineError, start_time: float
    ) -> PipelineResult:
        pipeline_logger.run_failure(
            run_id,
            keyword_id or "",
            error.category,
            error.message,
            (time.monotonic() - start_time) * 1000,
        )
        validation_errors: list[str] = []
        if isinstance(error, ValidationError):
            validation_errors = [error.message]
        elif getattr(error, "missing_fields", None):
            validation_errors = [f"missing field: {f}" for f in error.missing_fields]  # type: ignore[attr-defined]
        return PipelineResult(
            success=False,
            keyword_id=keyword_id or None,
            error=error.message,
            error_category=error.category,
            validation_errors=validation_errors,
        )
