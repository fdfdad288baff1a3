"""Claude (Anthropic Messages API) client used to write blog content.

Features:
- Async HTTP client using httpx (direct API calls)
- Circuit breaker shared across all completions
- Retry with exponential backoff on 5xx, timeouts and transport errors
- 429 honours Retry-After (up to 60s); 401/403 and other 4xx are not retried
- Token usage and per-request cost for generation accounting
- API key is never logged

ERROR LOGGING REQUIREMENTS:
- Log all outbound API calls with model, timing and retry attempt
- Log request/response bodies at DEBUG level (truncated)
- Log and handle: timeouts, rate limits (429), auth failures (401/403)
- Log token usage for credit tracking
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from getcare.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from getcare.core.config import get_settings
from getcare.core.logging import claude_logger, get_logger

logger = get_logger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"
MAX_RETRY_AFTER_SECONDS = 60


@dataclass
class CompletionResult:
    """Result of a Claude completion request."""

    success: bool
    text: str | None = None
    stop_reason: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    error: str | None = None
    status_code: int | None = None
    duration_ms: float = 0.0
    request_id: str | None = None


class ClaudeError(Exception):
    """Base exception for Claude API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.request_id = request_id


class ClaudeTimeoutError(ClaudeError):
    """Raised when a request times out."""


class ClaudeRateLimitError(ClaudeError):
    """Raised when rate limited (429)."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class LLMClient(Protocol):
    """What the content pipeline needs from a completion backend."""

    async def complete(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> CompletionResult: ...

    def estimate_cost(
        self, input_tokens: int | None, output_tokens: int | None
    ) -> float: ...


class ClaudeClient:
    """Async client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        max_tokens: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key. Defaults to settings.
            model: Model to use. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
            max_retries: Maximum attempts per completion. Defaults to settings.
            retry_delay: Base delay between retries. Defaults to settings.
            max_tokens: Maximum response tokens. Defaults to settings.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        settings = get_settings()

        self._api_key = api_key or settings.anthropic_api_key
        self._model = model or settings.claude_model
        self._timeout = timeout or settings.claude_timeout
        self._max_retries = max_retries or settings.claude_max_retries
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.claude_retry_delay
        )
        self._max_tokens = max_tokens or settings.claude_max_tokens
        self._temperature = settings.claude_temperature
        self._input_cost_per_1k = settings.claude_input_cost_per_1k
        self._output_cost_per_1k = settings.claude_output_cost_per_1k
        self._transport = transport

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.claude_circuit_failure_threshold,
                recovery_timeout=settings.claude_circuit_recovery_timeout,
            ),
            name="claude",
        )

        self._client: httpx.AsyncClient | None = None
        self._available = bool(self._api_key)

    @property
    def available(self) -> bool:
        """Check if Claude is configured and available."""
        return self._available

    @property
    def model(self) -> str:
        """Get the model being used."""
        return self._model

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance."""
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers: dict[str, str] = {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "anthropic-version": ANTHROPIC_API_VERSION,
            }
            if self._api_key:
                headers["x-api-key"] = self._api_key

            self._client = httpx.AsyncClient(
                base_url=ANTHROPIC_API_URL,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Claude client closed")

    def estimate_cost(
        self, input_tokens: int | None, output_tokens: int | None
    ) -> float:
        """USD cost of one completion; 0 when token counts are unknown."""
        if input_tokens is None or output_tokens is None:
            return 0.0
        return (input_tokens / 1000) * self._input_cost_per_1k + (
            output_tokens / 1000
        ) * self._output_cost_per_1k

    async def _backoff(self, attempt: int, reason: str, **extra: Any) -> bool:
        """Sleep before the next attempt. Returns False when attempts are exhausted."""
        if attempt >= self._max_retries - 1:
            return False
        delay = self._retry_delay * (2**attempt)
        logger.warning(
            f"Claude request attempt {attempt + 1} {reason}, retrying in {delay}s",
            extra={
                "attempt": attempt + 1,
                "max_retries": self._max_retries,
                "delay_seconds": delay,
                **extra,
            },
        )
        await asyncio.sleep(delay)
        return True

    def _success(
        self, response: httpx.Response, duration_ms: float, request_id: str | None
    ) -> CompletionResult:
        data = response.json()
        blocks = data.get("content", [])
        text = "".join(
            block.get("text", "") for block in blocks if block.get("type", "text") == "text"
        )
        stop_reason = data.get("stop_reason")
        usage = data.get("usage", {})
        input_tokens = usage.get("input_tokens")
        output_tokens = usage.get("output_tokens")

        claude_logger.api_call_success(
            self._model,
            duration_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            request_id=request_id,
        )
        claude_logger.response_body(
            self._model, text, duration_ms, stop_reason=stop_reason
        )
        if input_tokens and output_tokens:
            claude_logger.token_usage(self._model, input_tokens, output_tokens)

        return CompletionResult(
            success=True,
            text=text,
            stop_reason=stop_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            request_id=request_id,
        )

    async def complete(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> CompletionResult:
        """Send a completion request to Claude.

        Transport and API failures never raise; they come back as a
        CompletionResult with success=False and a human-readable error.

        Args:
            user_prompt: The user message/prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum response tokens (overrides default)
            temperature: Sampling temperature (overrides default)

        Returns:
            CompletionResult with response text and metadata
        """
        if not self._available:
            return CompletionResult(
                success=False,
                error="Claude not configured (missing API key)",
            )

        if not await self._circuit_breaker.can_execute():
            claude_logger.graceful_fallback("complete", "Circuit breaker open")
            return CompletionResult(success=False, error="Circuit breaker is open")

        start_time = time.monotonic()
        client = await self._get_client()
        request_id: str | None = None
        last_error: ClaudeError | None = None
        last_status: int | None = None

        request_body: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            request_body["system"] = system_prompt
            claude_logger.request_body(self._model, system_prompt, user_prompt)

        for attempt in range(self._max_retries):
            attempt_start = time.monotonic()
            claude_logger.api_call_start(
                self._model, len(user_prompt), retry_attempt=attempt, request_id=request_id
            )

            try:
                response = await client.post("/v1/messages", json=request_body)
            except httpx.TimeoutException:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                claude_logger.timeout(self._model, self._timeout)
                claude_logger.api_call_error(
                    self._model,
                    duration_ms,
                    None,
                    "Request timed out",
                    "TimeoutError",
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                await self._circuit_breaker.record_failure()
                last_error = ClaudeTimeoutError(
                    f"Request timed out after {self._timeout}s"
                )
                if await self._backoff(attempt, "timed out"):
                    continue
                break
            except httpx.RequestError as e:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                claude_logger.api_call_error(
                    self._model,
                    duration_ms,
                    None,
                    str(e),
                    type(e).__name__,
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                await self._circuit_breaker.record_failure()
                last_error = ClaudeError(f"Request failed: {e}")
                if await self._backoff(attempt, "failed", error=str(e)):
                    continue
                break

            duration_ms = (time.monotonic() - attempt_start) * 1000
            request_id = response.headers.get("request-id")
            status = response.status_code
            last_status = status

            if status == 429:
                retry_after_header = response.headers.get("retry-after")
                retry_after = float(retry_after_header) if retry_after_header else None
                claude_logger.rate_limit(
                    self._model, retry_after=retry_after, request_id=request_id
                )
                await self._circuit_breaker.record_failure()
                last_error = ClaudeRateLimitError(
                    "Rate limit exceeded", retry_after=retry_after
                )
                if (
                    attempt < self._max_retries - 1
                    and retry_after
                    and retry_after <= MAX_RETRY_AFTER_SECONDS
                ):
                    await asyncio.sleep(retry_after)
                    continue
                break

            if status in (401, 403):
                claude_logger.auth_failure(status)
                claude_logger.api_call_error(
                    self._model,
                    duration_ms,
                    status,
                    "Authentication failed",
                    "AuthError",
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                await self._circuit_breaker.record_failure()
                last_error = ClaudeError(
                    f"Authentication failed ({status})", status_code=status
                )
                break

            if status >= 500:
                error_msg = f"Server error ({status})"
                claude_logger.api_call_error(
                    self._model,
                    duration_ms,
                    status,
                    error_msg,
                    "ServerError",
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                await self._circuit_breaker.record_failure()
                last_error = ClaudeError(error_msg, status_code=status)
                if await self._backoff(attempt, "failed", status_code=status):
                    continue
                break

            if status >= 400:
                error_body = response.json() if response.content else None
                detail = (
                    error_body.get("error", {}).get("message", str(error_body))
                    if isinstance(error_body, dict)
                    else "Client error"
                )
                claude_logger.api_call_error(
                    self._model,
                    duration_ms,
                    status,
                    detail,
                    "ClientError",
                    retry_attempt=attempt,
                    request_id=request_id,
                )
                last_error = ClaudeError(
                    f"Client error ({status}): {detail}", status_code=status
                )
                break

            await self._circuit_breaker.record_success()
            result = self._success(response, duration_ms, request_id)
            result.duration_ms = (time.monotonic() - start_time) * 1000
            return result

        return CompletionResult(
            success=False,
            error=str(last_error) if last_error else "Request failed after all retries",
            status_code=last_error.status_code if last_error else last_status,
            duration_ms=(time.monotonic() - start_time) * 1000,
            request_id=request_id,
        )


# Global Claude client instance
claude_client: ClaudeClient | None = None


async def init_claude() -> ClaudeClient:
    """Initialize the global Claude client."""
    global claude_client
    if claude_client is None:
        claude_client = ClaudeClient()
        if claude_client.available:
            logger.info("Claude client initialized", extra={"model": claude_client.model})
        else:
            logger.info("Claude not configured (missing API key)")
    return claude_client


async def close_claude() -> None:
    """Close the global Claude client."""
    global claude_client
    if claude_client:
        await claude_client.close()
        claude_client = None


async def get_claude() -> ClaudeClient:
    """Dependency for getting the Claude client."""
    if claude_client is None:
        await init_claude()
    return claude_client  # type: ignore[return-value]
