"""Error taxonomy for the content pipeline.

Fatal errors inside a pipeline run are caught at the orchestrator boundary
and turned into a structured result; the classes here carry the category
name that ends up in that result and in keyword.error_message.
"""


class PipelineError(Exception):
    """Base exception for content pipeline errors."""

    category = "PipelineError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PipelineError):
    """Raised when input is malformed (missing keyword, invalid locale)."""

    category = "ValidationError"

    def __init__(
        self, message: str, field: str | None = None, value: object = None
    ) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class AlreadyInProgressError(PipelineError):
    """Raised when a keyword is already held in 'generating'."""

    category = "AlreadyInProgressError"


class GenerationError(PipelineError):
    """Raised when the LLM call fails or returns unusable content."""

    category = "GenerationError"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentParseError(GenerationError):
    """Raised when no valid content JSON can be extracted from LLM output."""

    def __init__(self, message: str, missing_fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_fields = missing_fields or []


class ImagePartialFailure(PipelineError):
    """One or more images failed. Never fatal; reported in the run result."""

    category = "ImagePartialFailure"

    def __init__(self, message: str, errors: list[dict[str, str]]) -> None:
        super().__init__(message)
        self.errors = errors


class PersistenceError(PipelineError):
    """Raised when writing the post or keyword rows fails."""

    category = "PersistenceError"


class NotFoundError(PipelineError):
    """Raised when a referenced keyword, job or batch does not exist."""

    category = "NotFoundError"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id
