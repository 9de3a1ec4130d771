# vidq/errors.py
from enum import Enum


class ErrorKind(str, Enum):
    DUPLICATE = "duplicate"
    UNSUPPORTED_FORMAT = "unsupported_format"
    NOT_FOUND = "not_found"
    UNREADABLE = "unreadable"
    INSUFFICIENT_SPACE = "insufficient_space"
    START_FAILED = "start_failed"
    ENCODE_FAILED = "encode_failed"

    @property
    def retryable(self) -> bool:
        """Whether re-submitting the same file can reasonably succeed."""
        return self in (ErrorKind.START_FAILED, ErrorKind.ENCODE_FAILED)


class VidqError(Exception):
    pass


class SubmitRejected(VidqError):
    """A file was refused at submission and never entered the queue."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class JobStateError(VidqError):
    """An operation is not legal for the job's current status."""
