"""Image fan-out and HTML injection for generated posts.

generate_images() runs the planned images concurrently, bounded by a
semaphore, and never fails fast: each failed placeholder is recorded and
the rest continue. inject_images_into_html() swaps each successful
placeholder for a <figure> block exactly once and leaves the rest as
literal tokens.
"""

import asyncio
import html
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from getcare.core.config import get_settings
from getcare.core.logging import get_logger, image_logger
from getcare.integrations.images import ImageClient, ImageRequest
from getcare.services.content_parsing import ImagePlan

logger = get_logger(__name__)

MAX_ALT_LENGTH = 125


@dataclass
class GeneratedImage:
    """A stored image ready to be placed in the article."""

    placeholder: str
    url: str
    alt: str
    caption: str = ""
    prompt: str = ""
    revised_prompt: str | None = None
    cost: float = 0.0


@dataclass
class ImageContext:
    """Defaults applied to every image request of one document."""

    keyword: str = ""
    size: str = "16:9"
    quality: str = "standard"
    style: str = "photographic"
    negative_prompt: str | None = None


@dataclass
class ImageGenerationOutcome:
    images: list[GeneratedImage] = field(default_factory=list)
    total_cost: float = 0.0
    errors: list[dict[str, str]] = field(default_factory=list)


def enhance_alt_text(alt: str, keyword: str) -> str:
    """Non-empty alt text of at most 125 characters mentioning the keyword."""
    alt = " ".join((alt or "").split())
    keyword = " ".join((keyword or "").split())

    if not alt:
        alt = keyword or "Medical treatment in Korea"
    elif keyword and keyword.lower() not in alt.lower():
        alt = f"{alt} - {keyword}"

    if len(alt) <= MAX_ALT_LENGTH:
        return alt

    if keyword and keyword.lower() in alt.lower()[:MAX_ALT_LENGTH]:
        return alt[: MAX_ALT_LENGTH - 3].rstrip() + "..."
    # Keep the keyword at the end when truncation would drop it
    suffix = f" - {keyword}"[:MAX_ALT_LENGTH]
    head = alt[: MAX_ALT_LENGTH - len(suffix)].rstrip(" -")
    return (head + suffix)[:MAX_ALT_LENGTH]


async def generate_images(
    client: ImageClient,
    plans: Sequence[ImagePlan],
    context: ImageContext,
    concurrency: int | None = None,
) -> ImageGenerationOutcome:
    """Generate every planned image, tolerating individual failures."""
    limit = concurrency or get_settings().image_concurrency
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def run(plan: ImagePlan) -> GeneratedImage | dict[str, str]:
        request = ImageRequest(
            prompt=plan.prompt,
            negative_prompt=context.negative_prompt,
            size=context.size,
            quality=context.quality,
            style=context.style,
            placeholder=plan.placeholder,
        )
        async with semaphore:
            try:
                result = await client.generate(request)
            except Exception as e:
                # Recorded per placeholder, never raised
                logger.warning(
                    "Image backend raised",
                    extra={
                        "placeholder": plan.placeholder,
                        "error_type": type(e).__name__,
                        "error": str(e),
                    },
                    exc_info=True,
                )
                return {"placeholder": plan.placeholder, "error": str(e) or type(e).__name__}

        if not result.success or not result.url:
            return {
                "placeholder": plan.placeholder,
                "error": result.error or "Image generation failed",
            }
        return GeneratedImage(
            placeholder=plan.placeholder,
            url=result.url,
            alt=enhance_alt_text(plan.alt, context.keyword),
            caption=plan.caption,
            prompt=plan.prompt,
            revised_prompt=result.revised_prompt,
            cost=result.cost,
        )

    results = await asyncio.gather(*(run(plan) for plan in plans))

    outcome = ImageGenerationOutcome()
    for item in results:
        if isinstance(item, GeneratedImage):
            outcome.images.append(item)
            outcome.total_cost += item.cost
        else:
            outcome.errors.append(item)
    outcome.total_cost = round(outcome.total_cost, 4)

    image_logger.batch_summary(
        requested=len(plans),
        generated=len(outcome.images),
        failed=len(outcome.errors),
        total_cost=outcome.total_cost,
    )
    return outcome


def render_image_block(image: GeneratedImage) -> str:
    src = html.escape(image.url, quote=True)
    alt = html.escape(image.alt, quote=True)
    block = f'<figure class="blog-image"><img src="{src}" alt="{alt}" loading="lazy" />'
    if image.caption:
        block += f"<figcaption>{html.escape(image.caption)}</figcaption>"
    return block + "</figure>"


def _replace_first(content: str, token: str, block: str) -> str:
    escaped = re.escape(token)
    for pattern in (
        rf"<p[^>]*>\s*{escaped}\s*</p>",
        rf"<img\b[^>]*\bsrc=[\"']{escaped}[\"'][^>]*>",
    ):
        match = re.search(pattern, content, flags=re.I)
        if match:
            return content[: match.start()] + block + content[match.end() :]
    index = content.find(token)
    if index == -1:
        return content
    return content[:index] + block + content[index + len(token) :]


def inject_images_into_html(content: str, images: Sequence[GeneratedImage]) -> str:
    """Replace each image's placeholder token with its figure block.

    Each token is replaced at most once. Tokens without an image stay as
    literal text. Calling again with no images returns content unchanged.
    """
    for image in images:
        content = _replace_first(content, image.placeholder, render_image_block(image))
    return content


def count_placeholders(content: str, placeholders: Sequence[str]) -> int:
    return sum(content.count(token) for token in placeholders)
