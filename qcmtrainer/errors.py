from __future__ import annotations

"""Error taxonomy for sessions, persistence and configuration."""

from typing import Optional


class QcmError(Exception):
    """Base class for qcmtrainer errors."""


class SessionLoadError(QcmError, ValueError):
    """Session data is structurally unusable; the host shows a blocking state."""


class QuestionFormatError(SessionLoadError):
    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"question {index}: {reason}")
        self.index = index
        self.reason = reason


class PersistenceError(QcmError):
    """A store write failed. In-memory progress is untouched; retry later."""

    retryable = True

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class ConfigError(QcmError, ValueError):
    pass
