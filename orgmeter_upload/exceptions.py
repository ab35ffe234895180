"""Domain exceptions for the upload pipeline."""


class UploadError(Exception):
    """Base class for upload pipeline errors."""


class CsvParseError(UploadError):
    """Raised when an uploaded file cannot be read as CSV."""


class EmptyInputError(CsvParseError):
    """Raised when an uploaded file contains no non-blank lines."""


class JobNotFoundError(UploadError):
    """Raised when an upload job id does not exist."""

    def __init__(self, job_id: str):
        super().__init__(f"Upload job {job_id} not found")
        self.job_id = job_id


class InvalidTransitionError(UploadError):
    """Raised when a job status change is not allowed from its current state."""

    def __init__(self, job_id: str, target: str, current: str = None):
        message = f"Cannot move upload job {job_id} to '{target}'"
        if current:
            message += f" from '{current}'"
        super().__init__(message)
        self.job_id = job_id
        self.target = target
        self.current = current
