"""
Error taxonomy for the question pipeline.

Service-layer operations translate collaborator failures (OpenAI, DeepL,
SQLAlchemy) into one of these so callers never see a raw client exception.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class: carries the failing operation and replay context."""

    def __init__(self, message: str, operation: str = "", **context: Any):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class UpstreamServiceError(PipelineError):
    """Completion or translation backend failed, timed out, or returned junk. Retryable."""


class GenerationFailed(UpstreamServiceError):
    """Question generation could not produce a usable batch."""


class ValidationFailed(UpstreamServiceError):
    """Structured output did not match the required shape."""


class NotFound(PipelineError):
    def __init__(self, entity: str, entity_id: Any, operation: str = ""):
        super().__init__(f"{entity} not found", operation, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class Conflict(PipelineError):
    """Duplicate names, ineligible state transitions, legacy key clashes."""


class PartialBatchFailure(PipelineError):
    """A batch where some items succeeded and some failed."""

    def __init__(self, outcome: Any, operation: str = ""):
        failed = [item.id for item in outcome.items if not item.ok]
        super().__init__(
            f"{len(failed)} of {len(outcome.items)} items failed",
            operation,
            failed=failed,
        )
        self.outcome = outcome


def describe(error: BaseException, limit: Optional[int] = 300) -> str:
    """Short, loggable description of any exception."""
    text = f"{type(error).__name__}: {error}"
    return text[:limit] if limit else text
