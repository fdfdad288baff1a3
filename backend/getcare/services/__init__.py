"""Services layer - Business logic and orchestration.

Services coordinate between repositories, integrations, and other services
to implement business use cases. They contain no direct database or
external API access - that's delegated to repositories and integrations.
"""

from getcare.services.author_persona import (
    DEFAULT_PERSONA,
    AuthorProfile,
    PersonaService,
    select_persona,
)
from getcare.services.content_assembler import (
    GeneratedImage,
    ImageContext,
    ImageGenerationOutcome,
    generate_images,
    inject_images_into_html,
)
from getcare.services.content_parsing import (
    GeneratedContent,
    ImagePlan,
    parse_generated_content,
)
from getcare.services.content_pipeline import (
    ContentPipeline,
    PipelineOptions,
    PipelineResult,
    make_slug,
)
from getcare.services.generation_queue import (
    BatchProgress,
    BatchSubmission,
    GenerationQueue,
)
from getcare.services.generation_worker import (
    ClaimedJob,
    GenerationWorker,
    JobResult,
)
from getcare.services.locales import (
    LOCALE_RULES,
    VALID_LOCALES,
    LocaleRules,
    get_locale_rules,
    is_valid_locale,
)
from getcare.services.progress_stream import ProgressStream, format_event
from getcare.services.prompt_builder import (
    BuiltPrompt,
    ContentType,
    SearchIntent,
    build_prompt,
)
from getcare.services.quality_scorer import (
    ContentInput,
    QualityScoreResult,
    calculate_quality_score,
    meets_quality_threshold,
)

__all__ = [
    # Locales
    "LOCALE_RULES",
    "VALID_LOCALES",
    "LocaleRules",
    "get_locale_rules",
    "is_valid_locale",
    # Author personas
    "DEFAULT_PERSONA",
    "AuthorProfile",
    "PersonaService",
    "select_persona",
    # Prompt building
    "BuiltPrompt",
    "ContentType",
    "SearchIntent",
    "build_prompt",
    # Parsing
    "GeneratedContent",
    "ImagePlan",
    "parse_generated_content",
    # Images
    "GeneratedImage",
    "ImageContext",
    "ImageGenerationOutcome",
    "generate_images",
    "inject_images_into_html",
    # Quality
    "ContentInput",
    "QualityScoreResult",
    "calculate_quality_score",
    "meets_quality_threshold",
    # Pipeline
    "ContentPipeline",
    "PipelineOptions",
    "PipelineResult",
    "make_slug",
    # Queue / worker / stream
    "BatchProgress",
    "BatchSubmission",
    "ClaimedJob",
    "GenerationQueue",
    "GenerationWorker",
    "JobResult",
    "ProgressStream",
    "format_event",
]
