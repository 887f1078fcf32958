"""
errors.py

Exceptions raised by the exam engine's collaborators.
The engine catches these at its boundary and reports them as ActionResult.
"""


class ExamError(Exception):
    """Base class for every exam-engine failure."""


class BankUnavailableError(ExamError):
    """The Question Bank returned no questions (or could not be reached)."""


class CooldownActiveError(ExamError):
    """A failed attempt is still inside its freezing period."""

    def __init__(self, message: str, retry_at=None):
        super().__init__(message)
        self.retry_at = retry_at


class InvalidTransitionError(ExamError):
    """An action was requested in a state that does not accept it."""


class ResumeInconsistencyError(ExamError):
    """Persisted session data no longer matches the current question bank."""


class ResultStoreError(ExamError):
    """The Result Store rejected a request or was unreachable."""


class SessionStoreError(ExamError):
    """The persistent session store could not be read or written."""
