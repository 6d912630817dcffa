"""Error taxonomy for the analysis pipeline.

Retryability is a property of the exception class: ``RetryExecutor`` retries
``RetryableError`` subclasses and lets everything else through untouched.
Adapters translate client-library exceptions into these types at the edge so
the orchestrator only ever reasons about this module.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every failure the pipeline knows how to classify."""

    retryable = False

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage


class RetryableError(PipelineError):
    """Transient failure; the same call may succeed if repeated."""

    retryable = True


class TransientServiceError(RetryableError):
    """A collaborator is temporarily unavailable or throttling."""

    def __init__(self, service: str, message: str, *, stage: str | None = None) -> None:
        super().__init__(f"{service}: {message}", stage=stage)
        self.service = service


class InputValidationError(PipelineError):
    """Caller-supplied item input is unusable. Rejected before the pipeline runs."""


class ServiceRejectedError(PipelineError):
    """A collaborator refused the request (4xx other than throttling)."""

    def __init__(self, service: str, message: str, *, stage: str | None = None) -> None:
        super().__init__(f"{service}: {message}", stage=stage)
        self.service = service


class DomainError(PipelineError):
    """A response arrived but cannot be used. Never retried."""


class LowConfidenceError(DomainError):
    def __init__(self, confidence: float, threshold: float, *, label: str | None = None) -> None:
        subject = f"'{label}'" if label else "no garment type"
        super().__init__(
            f"garment detection confidence too low: {subject} at {confidence:g}% "
            f"(threshold {threshold:g}%)",
            stage="vision",
        )
        self.confidence = confidence
        self.threshold = threshold
        self.label = label


class MalformedResponseError(DomainError):
    """Collaborator payload is empty, unparseable or fails schema validation."""


class EmptyCandidateSetError(DomainError):
    def __init__(self, proposed: int) -> None:
        super().__init__(
            f"no valid strategy candidates ({proposed} proposed, all rejected)",
            stage="strategy_generation",
        )
        self.proposed = proposed


class ConcurrencyConflictError(PipelineError):
    """Stored status no longer matches the status the writer expected."""

    def __init__(self, item_id: str, expected_status: str, actual_status: str) -> None:
        super().__init__(
            f"item {item_id} is '{actual_status}', expected '{expected_status}'",
            stage="persistence",
        )
        self.item_id = item_id
        self.expected_status = expected_status
        self.actual_status = actual_status


class ItemNotFoundError(PipelineError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"item {item_id} not found", stage="persistence")
        self.item_id = item_id


class PipelineTimeoutError(PipelineError):
    def __init__(self, deadline_seconds: float, *, stage: str | None = None) -> None:
        super().__init__(f"pipeline exceeded its {deadline_seconds:g}s deadline", stage=stage)
        self.deadline_seconds = deadline_seconds


class RetryExhaustedError(PipelineError):
    """Every attempt allowed by the retry policy failed with a retryable error."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            stage=getattr(last_error, "stage", None),
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
