"""Exception taxonomy shared by the pipeline, storage, and HTTP layers."""

from __future__ import annotations


class PhotoStylizerError(Exception):
    """Base class for every error raised by this package."""

    code = "INTERNAL_ERROR"
    status_code = 500


class RequestValidationFailed(PhotoStylizerError):
    """Upload rejected before a task is created."""

    status_code = 400

    def __init__(self, code: str, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class InfeasibleInputError(PhotoStylizerError):
    """Analysis decided the photo cannot be stylized. Not a system fault."""

    code = "INFEASIBLE_INPUT"
    status_code = 422

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class CapabilityError(PhotoStylizerError):
    """An external collaborator (model or object store) failed."""

    code = "CAPABILITY_ERROR"
    status_code = 502


class AnalysisError(CapabilityError):
    code = "ANALYSIS_FAILED"


class GenerationError(CapabilityError):
    code = "GENERATION_FAILED"


class ReviewError(CapabilityError):
    code = "REVIEW_FAILED"


class StorageError(CapabilityError):
    code = "STORAGE_ERROR"


class TaskNotFoundError(PhotoStylizerError):
    """Unknown or expired task id. The two cases are reported identically."""

    code = "TASK_NOT_FOUND"
    status_code = 404
    hint = "Task may have expired (1 hour TTL)"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TaskAlreadyExistsError(PhotoStylizerError):
    code = "TASK_EXISTS"
    status_code = 409

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} already exists")
        self.task_id = task_id


class TaskNotReadyError(PhotoStylizerError):
    """Result requested for a task that has not reached COMPLETED."""

    code = "TASK_NOT_COMPLETED"
    status_code = 400

    def __init__(self, task_id: str, status: str, error_message: str | None = None) -> None:
        super().__init__(f"Task {task_id} is not completed (status={status})")
        self.task_id = task_id
        self.status = status
        self.error_message = error_message


class TaskCancelledError(PhotoStylizerError):
    code = "TASK_CANCELLED"
    status_code = 409

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} was cancelled")
        self.task_id = task_id
