"""Object storage for generated blog images (S3-compatible, via boto3).

Image backends return raw bytes; this client uploads them under a stable
key and hands back the permanent public URL that ends up in post HTML.

ERROR LOGGING REQUIREMENTS:
- Log every upload with key, timing and retry attempt
- Log and handle: auth failures, connection errors, missing bucket
- Never log access keys
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config as BotoConfig  # type: ignore[import-not-found]
from botocore.exceptions import (  # type: ignore[import-not-found]
    BotoCoreError,
    ClientError,
    ConnectionError,
    EndpointConnectionError,
)

from getcare.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from getcare.core.config import get_settings
from getcare.core.logging import get_logger

logger = get_logger(__name__)

_AUTH_ERROR_CODES = ("AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch")


class StorageError(Exception):
    """Base exception for object storage errors."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class StorageAuthError(StorageError):
    """Raised when storage credentials are rejected."""


class StorageConnectionError(StorageError):
    """Raised when the storage endpoint cannot be reached."""


class StorageCircuitOpenError(StorageError):
    """Raised when circuit breaker is open."""


class StorageClient:
    """Uploads image bytes to an S3-compatible bucket."""

    def __init__(
        self,
        bucket: str | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        public_base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        settings = get_settings()

        self._bucket = bucket or settings.s3_bucket
        self._endpoint_url = endpoint_url or settings.s3_endpoint_url
        self._access_key = access_key or settings.s3_access_key
        self._secret_key = secret_key or settings.s3_secret_key
        self._region = region or settings.s3_region
        self._public_base_url = public_base_url or settings.s3_public_base_url
        self._timeout = timeout or settings.s3_timeout
        self._max_retries = max_retries or settings.s3_max_retries
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.s3_retry_delay
        )

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.s3_circuit_failure_threshold,
                recovery_timeout=settings.s3_circuit_recovery_timeout,
            ),
            name="storage",
        )

        self._client: Any = None
        self._available = bool(self._bucket and self._access_key and self._secret_key)

    @property
    def available(self) -> bool:
        """Check if storage is configured."""
        return self._available

    @property
    def bucket(self) -> str | None:
        """Get the configured bucket name."""
        return self._bucket

    def _get_client(self) -> Any:
        """Get or create the boto3 S3 client."""
        if self._client is None:
            client_kwargs: dict[str, Any] = {
                "service_name": "s3",
                "aws_access_key_id": self._access_key,
                "aws_secret_access_key": self._secret_key,
                "region_name": self._region,
                "config": BotoConfig(
                    connect_timeout=self._timeout,
                    read_timeout=self._timeout,
                    retries={"max_attempts": 0},  # retried here, not by botocore
                ),
            }
            if self._endpoint_url:
                client_kwargs["endpoint_url"] = self._endpoint_url
            self._client = boto3.client(**client_kwargs)
        return self._client

    def public_url(self, key: str) -> str:
        """Public URL an uploaded object is served from."""
        if self._public_base_url:
            return f"{self._public_base_url.rstrip('/')}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def _run(self, operation: str, key: str, func: Callable[[], Any]) -> Any:
        """Run a blocking boto3 call in the executor with retry and circuit breaker."""
        if not self._available:
            raise StorageError(
                "Storage not configured (missing bucket, access_key, or secret_key)",
                key=key,
            )

        if not await self._circuit_breaker.can_execute():
            logger.warning(
                f"Storage {operation} blocked by circuit breaker",
                extra={"s3_key": key},
            )
            raise StorageCircuitOpenError("Circuit breaker is open", key=key)

        last_error: StorageError | None = None
        loop = asyncio.get_running_loop()

        for attempt in range(self._max_retries):
            start_time = time.monotonic()
            try:
                result = await loop.run_in_executor(None, func)
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.info(
                    f"Storage {operation} completed",
                    extra={
                        "s3_key": key,
                        "s3_bucket": self._bucket,
                        "duration_ms": round(duration_ms, 2),
                        "retry_attempt": attempt,
                    },
                )
                await self._circuit_breaker.record_success()
                return result

            except ClientError as e:
                error = e.response.get("Error", {})
                code = error.get("Code", "Unknown")
                message = error.get("Message", str(e))
                await self._circuit_breaker.record_failure()
                self._log_error(operation, key, start_time, message, f"ClientError:{code}", attempt)
                if code in _AUTH_ERROR_CODES:
                    raise StorageAuthError(f"Authentication failed: {message}", key=key) from e
                if code == "NoSuchBucket":
                    raise StorageError(f"Bucket not found: {self._bucket}", key=key) from e
                last_error = StorageError(f"Storage error ({code}): {message}", key=key)

            except (EndpointConnectionError, ConnectionError) as e:
                await self._circuit_breaker.record_failure()
                self._log_error(operation, key, start_time, str(e), "ConnectionError", attempt)
                last_error = StorageConnectionError(f"Connection failed: {e}", key=key)

            except BotoCoreError as e:
                await self._circuit_breaker.record_failure()
                self._log_error(operation, key, start_time, str(e), type(e).__name__, attempt)
                last_error = StorageError(f"Storage error: {e}", key=key)

            if attempt < self._max_retries - 1:
                delay = self._retry_delay * (2**attempt)
                logger.warning(
                    f"Storage {operation} attempt {attempt + 1} failed, retrying in {delay}s",
                    extra={"s3_key": key, "attempt": attempt + 1, "delay_seconds": delay},
                )
                await asyncio.sleep(delay)

        raise last_error or StorageError("Operation failed after all retries", key=key)

    def _log_error(
        self,
        operation: str,
        key: str,
        start_time: float,
        error: str,
        error_type: str,
        attempt: int,
    ) -> None:
        logger.error(
            f"Storage {operation} failed: {error}",
            extra={
                "s3_key": key,
                "s3_bucket": self._bucket,
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
                "error": error,
                "error_type": error_type,
                "retry_attempt": attempt,
            },
        )

    async def upload_bytes(
        self, key: str, data: bytes, content_type: str = "image/png"
    ) -> str:
        """Upload bytes under key and return the object's public URL.

        Raises:
            StorageError: If the upload fails after all retries
        """
        client = self._get_client()
        await self._run(
            "upload",
            key,
            lambda: client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000, immutable",
            ),
        )
        return self.public_url(key)


# Global storage client instance
storage_client: StorageClient | None = None


async def init_storage() -> StorageClient:
    """Initialize the global storage client."""
    global storage_client
    if storage_client is None:
        storage_client = StorageClient()
        if storage_client.available:
            logger.info(
                "Storage client initialized", extra={"bucket": storage_client.bucket}
            )
        else:
            logger.info("Storage not configured (missing bucket or credentials)")
    return storage_client


async def close_storage() -> None:
    """Release the global storage client."""
    global storage_client
    storage_client = None


async def get_storage() -> StorageClient:
    """Dependency for getting the storage client."""
    if storage_client is None:
        await init_storage()
    return storage_client  # type: ignore[return-value]
