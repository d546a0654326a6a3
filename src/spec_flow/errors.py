from __future__ import annotations


class WorkflowError(Exception):
    """Базовая ошибка движка стадий."""
    code: str = "workflow_error"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ExtractionError(WorkflowError):
    """Extractor failures are not degraded: the whole invocation fails."""
    code = "extraction_failed"
    status_code = 502

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class CircuitOpenError(WorkflowError):
    code = "circuit_open"
    status_code = 503

    def __init__(self, message: str, *, retry_after_s: float = 0.0):
        super().__init__(message)
        self.retry_after_s = retry_after_s


class StageMigrationError(WorkflowError):
    code = "stage_migration_error"
    status_code = 500


class CheckpointError(WorkflowError):
    code = "checkpoint_error"
    status_code = 500
