"""Image generation client interface and the Google Imagen backend.

The content assembler depends only on the ImageClient protocol. The concrete
backend is chosen at composition time (getcare.main), so switching image
providers never touches pipeline code.

ImagenClient posts to the Generative Language `:predict` endpoint, receives
base64 image bytes and stores them through StorageClient, returning the
permanent public URL.

ERROR LOGGING REQUIREMENTS:
- Log every outbound request with model, placeholder, timing and retry attempt
- Log and handle: timeouts, rate limits (429), auth failures (401/403)
- Never log API keys or image bytes
"""

import asyncio
import base64
import binascii
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

import httpx

from getcare.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from getcare.core.config import get_settings
from getcare.core.logging import get_logger, image_logger
from getcare.integrations.storage import StorageClient, StorageError, get_storage

logger = get_logger(__name__)

DEFAULT_NEGATIVE_PROMPT = (
    "blurry, low quality, distorted, deformed, bad anatomy, watermark, "
    "signature, text overlay, cartoon, anime, illustration, 3d render, CGI"
)
STYLE_PREFIX = "Ultra-realistic professional photograph, "
CONTEXT_SUFFIX = (
    ". Setting: Premium Korean medical clinic in Seoul's Gangnam district. "
    "Style: Editorial documentary photography, natural lighting, professional "
    "atmosphere. Technical: 8K resolution, sharp focus, natural colors."
)
_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}


@dataclass
class ImageRequest:
    """One image to generate."""

    prompt: str
    negative_prompt: str | None = None
    size: str = "16:9"
    quality: str = "standard"
    style: str = "photographic"
    placeholder: str | None = None


@dataclass
class ImageResult:
    """Outcome of one image request."""

    success: bool
    url: str | None = None
    revised_prompt: str | None = None
    size_class: str | None = None
    quality_class: str | None = None
    cost: float = 0.0
    latency_ms: float = 0.0
    error: str | None = None
    status_code: int | None = None


class ImageGenerationError(Exception):
    """Raised when an image response cannot be used."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImageClient(Protocol):
    """What the content assembler needs from an image backend."""

    async def generate(self, request: ImageRequest) -> ImageResult: ...


def enhance_prompt(prompt: str) -> str:
    """Wrap a planned prompt with the house photography style."""
    return STYLE_PREFIX + prompt.strip().rstrip(".") + CONTEXT_SUFFIX


class ImagenClient:
    """Google Imagen backend storing results in object storage."""

    def __init__(
        self,
        storage: StorageClient,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        cost_per_image: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()

        self._storage = storage
        self._api_key = api_key or settings.image_api_key
        self._base_url = base_url or settings.image_api_url
        self._model = model or settings.image_model
        self._timeout = timeout or settings.image_timeout
        self._max_retries = max_retries or settings.image_max_retries
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.image_retry_delay
        )
        self._cost_per_image = (
            cost_per_image
            if cost_per_image is not None
            else settings.image_cost_per_image
        )
        self._transport = transport

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.image_circuit_failure_threshold,
                recovery_timeout=settings.image_circuit_recovery_timeout,
            ),
            name="images",
        )
        self._client: httpx.AsyncClient | None = None

    @property
    def available(self) -> bool:
        """Check if the backend and its storage are configured."""
        return bool(self._api_key) and self._storage.available

    @property
    def model(self) -> str:
        """Get the model being used."""
        return self._model

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self._api_key or "",
                },
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_body(self, request: ImageRequest) -> dict[str, Any]:
        prompt = enhance_prompt(request.prompt)
        negative = request.negative_prompt or DEFAULT_NEGATIVE_PROMPT
        return {
            "instances": [{"prompt": f"{prompt} Avoid: {negative}."}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": request.size,
                "personGeneration": "allow_adult",
            },
        }

    @staticmethod
    def _decode(data: dict[str, Any]) -> tuple[bytes, str, str | None]:
        predictions = data.get("predictions") or []
        if not predictions:
            raise ImageGenerationError("No image returned (possibly filtered)")
        prediction = predictions[0]
        encoded = prediction.get("bytesBase64Encoded")
        if not encoded:
            raise ImageGenerationError("Image response missing image bytes")
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageGenerationError(f"Invalid base64 image data: {e}") from e
        return raw, prediction.get("mimeType", "image/png"), prediction.get("prompt")

    async def _store(self, raw: bytes, mime_type: str) -> str:
        extension = _EXTENSIONS.get(mime_type, "png")
        key = f"blog-images/{datetime.now(UTC):%Y/%m}/{uuid4().hex}.{extension}"
        return await self._storage.upload_bytes(key, raw, content_type=mime_type)

    async def generate(self, request: ImageRequest) -> ImageResult:
        """Generate one image and return its permanent URL.

        Never raises for transport or API failures; those come back as an
        ImageResult with success=False and a human-readable error.
        """
        if not self.available:
            return ImageResult(
                success=False,
                error="Image generation not configured (missing API key or storage)",
            )

        if not await self._circuit_breaker.can_execute():
            return ImageResult(success=False, error="Circuit breaker is open")

        start_time = time.monotonic()
        client = await self._get_client()
        body = self._build_body(request)
        path = f"/v1beta/models/{self._model}:predict"
        error: str = "Request failed after all retries"
        status_code: int | None = None

        for attempt in range(self._max_retries):
            attempt_start = time.monotonic()
            image_logger.api_call_start(self._model, request.placeholder, attempt)
            retryable = False

            try:
                response = await client.post(path, json=body)
                status_code = response.status_code

                if status_code == 200:
                    raw, mime_type, revised = self._decode(response.json())
                    url = await self._store(raw, mime_type)
                    latency_ms = (time.monotonic() - start_time) * 1000
                    await self._circuit_breaker.record_success()
                    image_logger.api_call_success(
                        self._model, request.placeholder, latency_ms, self._cost_per_image
                    )
                    return ImageResult(
                        success=True,
                        url=url,
                        revised_prompt=revised,
                        size_class=request.size,
                        quality_class=request.quality,
                        cost=self._cost_per_image,
                        latency_ms=latency_ms,
                        status_code=status_code,
                    )

                if status_code in (401, 403):
                    error = f"Authentication failed ({status_code})"
                    await self._circuit_breaker.record_failure()
                elif status_code == 429:
                    error = "Rate limit exceeded"
                    retryable = True
                    await self._circuit_breaker.record_failure()
                elif status_code >= 500:
                    error = f"Server error ({status_code})"
                    retryable = True
                    await self._circuit_breaker.record_failure()
                else:
                    # Prompt rejected (e.g. safety filter); not a backend fault
                    error = f"Client error ({status_code}): {response.text[:200]}"

            except httpx.TimeoutException:
                image_logger.timeout(self._model, self._timeout)
                await self._circuit_breaker.record_failure()
                error = f"Request timed out after {self._timeout}s"
                status_code = None
                retryable = True
            except httpx.RequestError as e:
                await self._circuit_breaker.record_failure()
                error = f"Request failed: {e}"
                status_code = None
                retryable = True
            except ImageGenerationError as e:
                error = str(e)
            except StorageError as e:
                error = f"Image upload failed: {e}"

            image_logger.api_call_error(
                self._model,
                request.placeholder,
                (time.monotonic() - attempt_start) * 1000,
                status_code,
                error,
                attempt,
            )

            if not retryable or attempt >= self._max_retries - 1:
                break
            await asyncio.sleep(self._retry_delay * (2**attempt))

        return ImageResult(
            success=False,
            error=error,
            status_code=status_code,
            latency_ms=(time.monotonic() - start_time) * 1000,
        )


# Global image client instance
image_client: ImagenClient | None = None


async def init_images(storage: StorageClient) -> ImagenClient:
    """Initialize the global image client on top of the given storage."""
    global image_client
    if image_client is None:
        image_client = ImagenClient(storage)
        if image_client.available:
            logger.info("Image client initialized", extra={"model": image_client.model})
        else:
            logger.info("Image generation not configured (missing API key or storage)")
    return image_client


async def close_images() -> None:
    """Close the global image client."""
    global image_client
    if image_client:
        await image_client.close()
        image_client = None


async def get_images() -> ImagenClient:
    """Dependency for getting the image client."""
    if image_client is None:
        storage = await get_storage()
        await init_images(storage)
    return image_client  # type: ignore[return-value]
