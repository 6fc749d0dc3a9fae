"""Error taxonomy shared by the gateway, the pipeline and the submission path."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    FATAL = "fatal"


TRANSIENT_KINDS = frozenset(
    {
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.SERVER_ERROR,
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
    }
)


class CompletionError(Exception):
    """A classified failure of a completion call."""

    def __init__(self, kind: ErrorKind, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"[{self.kind.value} {self.status_code}] {base}"
        return f"[{self.kind.value}] {base}"


class StageViolation(Exception):
    """A stage's output failed its post-condition. Retried at the stage boundary."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


class PipelineError(Exception):
    """Quiz generation failed; ``stage`` names where."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.reason = message


class AnswerKeyError(PipelineError):
    """The reconciled answer does not match the options. Never retried."""


class SubmissionRejected(Exception):
    SESSION_NOT_FOUND = "session not found"
    INVALID_SUBMISSION = "invalid submission"

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors: List[str] = list(errors or [])
