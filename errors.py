"""Engine error conditions surfaced to callers (and mapped to HTTP by app.py)."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for local, non-retryable engine conditions."""

    status_code = 400
    code = "engine_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__doc__ or self.code)
        self.message = message or (self.__doc__ or self.code).strip()

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class Unauthenticated(EngineError):
    """Sign-in required."""

    status_code = 401
    code = "unauthenticated"


class WindowClosed(EngineError):
    """This action is closed for the meeting."""

    status_code = 409
    code = "window_closed"


class DuplicateSubmission(EngineError):
    """Homework already submitted for this meeting."""

    status_code = 409
    code = "duplicate_submission"


class MeetingNotFound(EngineError):
    """Meeting not found."""

    status_code = 404
    code = "not_found"


class PersistenceError(EngineError):
    """The data store rejected the operation."""

    status_code = 503
    code = "persistence_error"
