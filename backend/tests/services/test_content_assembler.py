"""Tests for image generation fan-out and HTML injection.

Tests cover:
- Placeholder replacement in paragraph, img src and bare-token form
- Each placeholder replaced once; failed images leave their token
- Alt text enhancement
- Concurrency bound and per-image error isolation
"""

import asyncio

import pytest

from conftest import FakeImages
from getcare.integrations.images import ImageRequest, ImageResult
from getcare.services.content_assembler import (
    MAX_ALT_LENGTH,
    GeneratedImage,
    ImageContext,
    count_placeholders,
    enhance_alt_text,
    generate_images,
    inject_images_into_html,
    render_image_block,
)
from getcare.services.content_parsing import ImagePlan

P1 = "[IMAGE_PLACEHOLDER_1]"
P2 = "[IMAGE_PLACEHOLDER_2]"


def image(placeholder: str, caption: str = "") -> GeneratedImage:
    index = placeholder.strip("[]").rsplit("_", 1)[-1]
    return GeneratedImage(
        placeholder=placeholder,
        url=f"https://cdn.test/{index}.png",
        alt=f"Alt {index}",
        caption=caption,
    )


class TestRenderImageBlock:
    """Tests for the figure markup."""

    def test_with_caption(self) -> None:
        """A caption renders as a figcaption under the image."""
        block = render_image_block(image(P1, caption="Recovery suite"))
        assert block == (
            '<figure class="blog-image"><img src="https://cdn.test/1.png" alt="Alt 1" '
            'loading="lazy" /><figcaption>Recovery suite</figcaption></figure>'
        )

    def test_attributes_escaped(self) -> None:
        """Alt text and captions are HTML-escaped."""
        img = GeneratedImage(placeholder=P1, url="https://cdn.test/a.png", alt='5" scar')
        assert 'alt="5&quot; scar"' in render_image_block(img)


class TestInjectImages:
    """Tests for placeholder replacement."""

    def test_paragraph_wrapped_token(self) -> None:
        """A token alone in a paragraph is replaced together with its <p> wrapper."""
        html = f"<p>Intro</p><p>{P1}</p><p>Outro</p>"
        result = inject_images_into_html(html, [image(P1)])
        assert result == f"<p>Intro</p>{render_image_block(image(P1))}<p>Outro</p>"

    def test_img_src_token(self) -> None:
        html = f'<div><img src="{P1}" alt="x"></div>'
        result = inject_images_into_html(html, [image(P1)])
        assert result == f"<div>{render_image_block(image(P1))}</div>"

    def test_bare_token(self) -> None:
        html = f"<p>Before {P1} after</p>"
        result = inject_images_into_html(html, [image(P1)])
        assert P1 not in result
        assert "https://cdn.test/1.png" in result

    def test_each_token_replaced_once(self) -> None:
        """Each placeholder is replaced exactly once."""
        html = f"<p>{P1}</p><p>{P1}</p>"
        result = inject_images_into_html(html, [image(P1)])
        assert result.count("<figure") == 1
        assert result.count(P1) == 1

    def test_failed_image_leaves_token(self) -> None:
        """Placeholders without a generated image stay as literal text."""
        html = f"<p>{P1}</p><p>{P2}</p>"
        result = inject_images_into_html(html, [image(P1)])
        assert count_placeholders(result, [P1, P2]) == 1
        assert f"<p>{P2}</p>" in result

    def test_reinjection_is_noop(self) -> None:
        """Injecting again with no images leaves the HTML unchanged."""
        html = f"<p>{P1}</p><p>{P2}</p>"
        once = inject_images_into_html(html, [image(P1), image(P2)])
        assert inject_images_into_html(once, [image(P1), image(P2)]) == once
        assert inject_images_into_html(once, []) == once

    def test_placeholders_plus_figures_conserved(self) -> None:
        """Every planned placeholder ends up either as a figure or as its token."""
        html = f"<p>{P1}</p><h2>Cost</h2><p>{P2}</p>"
        result = inject_images_into_html(html, [image(P2)])
        assert count_placeholders(result, [P1, P2]) + result.count("<figure") == 2


class TestAltText:
    """Tests for alt text enhancement."""

    def test_keyword_appended(self) -> None:
        """The keyword is appended when the alt text does not mention it."""
        assert enhance_alt_text("Surgeon consulting", "rhinoplasty Korea") == (
            "Surgeon consulting - rhinoplasty Korea"
        )

    def test_keyword_not_duplicated(self) -> None:
        assert enhance_alt_text("Rhinoplasty Korea clinic", "rhinoplasty korea") == (
            "Rhinoplasty Korea clinic"
        )

    def test_empty_alt_uses_keyword(self) -> None:
        assert enhance_alt_text("  ", "lasik Seoul") == "lasik Seoul"

    def test_length_limit_keeps_keyword(self) -> None:
        """Truncation to 125 characters keeps the keyword."""
        alt = enhance_alt_text("word " * 60, "dental implants")
        assert len(alt) <= MAX_ALT_LENGTH
        assert alt.endswith("dental implants")

    def test_whitespace_collapsed(self) -> None:
        assert enhance_alt_text("Recovery\n  room", "") == "Recovery room"


class SlowImages:
    """Image client recording how many requests run at once."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0

    async def generate(self, request: ImageRequest) -> ImageResult:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return ImageResult(success=True, url=f"https://cdn.test/{request.placeholder}", cost=0.01)


class RaisingImages:
    async def generate(self, request: ImageRequest) -> ImageResult:
        if request.placeholder == P2:
            raise ConnectionError("socket closed")
        return ImageResult(success=True, url="https://cdn.test/ok.png", cost=0.02)


def plans(count: int) -> list[ImagePlan]:
    return [
        ImagePlan(placeholder=f"[IMAGE_PLACEHOLDER_{i}]", prompt=f"Scene {i}", alt=f"Scene {i}")
        for i in range(1, count + 1)
    ]


class TestGenerateImages:
    """Tests for concurrent image generation."""

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self) -> None:
        """No more than the configured number of images are in flight at once."""
        client = SlowImages()

        outcome = await generate_images(client, plans(6), ImageContext(keyword="botox"), concurrency=2)

        assert len(outcome.images) == 6
        assert client.peak <= 2
        assert outcome.total_cost == 0.06

    @pytest.mark.asyncio
    async def test_failures_isolated(self) -> None:
        """One failing placeholder does not stop the others."""
        client = FakeImages(fail={P1})

        outcome = await generate_images(client, plans(3), ImageContext(keyword="botox"), concurrency=3)

        assert [i.placeholder for i in outcome.images] == [P2, "[IMAGE_PLACEHOLDER_3]"]
        assert outcome.errors == [
            {"placeholder": P1, "error": "Client error (400): prompt rejected"}
        ]

    @pytest.mark.asyncio
    async def test_exceptions_recorded_not_raised(self) -> None:
        """Exceptions from the image client are recorded as errors."""
        outcome = await generate_images(RaisingImages(), plans(2), ImageContext(), concurrency=2)

        assert len(outcome.images) == 1
        assert outcome.errors == [{"placeholder": P2, "error": "socket closed"}]

    @pytest.mark.asyncio
    async def test_request_carries_context(self) -> None:
        client = FakeImages()
        context = ImageContext(keyword="lasik", size="4:3", negative_prompt="text")

        outcome = await generate_images(client, plans(1), context, concurrency=1)

        request = client.requests[0]
        assert request.size == "4:3"
        assert request.negative_prompt == "text"
        assert request.placeholder == P1
        assert outcome.images[0].alt == "Scene 1 - lasik"
