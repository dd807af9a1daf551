"""Custom exception hierarchy for genqueue.

Following error taxonomy: retryable (store connectivity) and non-retryable
(validation, selection, malformed records).
"""


class GenQueueError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(GenQueueError):
    """Errors that can be retried (network issues, temporary failures)."""

    pass


class NonRetryableError(GenQueueError):
    """Errors that should not be retried (validation, logic errors)."""

    pass


class StoreConnectionError(RetryableError):
    """Ordered store is unreachable or timed out."""

    def __init__(self, operation: str, detail: str) -> None:
        """Initialize with the failing store operation and cause."""
        self.operation = operation
        super().__init__(f"Store operation {operation} failed: {detail}")


class ValidationError(NonRetryableError):
    """Data validation errors."""

    pass


class MalformedTaskError(NonRetryableError):
    """A stored task record could not be decoded."""

    def __init__(self, task_id: str, detail: str) -> None:
        """Initialize with the offending task id."""
        self.task_id = task_id
        super().__init__(f"Malformed task record {task_id}: {detail}")


class ModelSelectionError(NonRetryableError):
    """No candidate model is configured for a use case."""

    pass
