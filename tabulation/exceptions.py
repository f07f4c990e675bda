"""
tabulation/exceptions.py
Custom exceptions for the tabulation engine

Provides typed exceptions for:
- Remote store read/write failures
- Submission lifecycle violations
- Unknown events, categories and participants
"""


class TabulationException(Exception):
    """Base exception for the tabulation engine"""
    status_code: int = 500

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)


class StoreError(TabulationException):
    """Raised when the remote store rejects or cannot serve a request."""
    status_code = 503

    def __init__(self, message: str = "Remote store unavailable", entity: str = None):
        self.entity = entity
        super().__init__(message, self.status_code)


class StoreReadError(StoreError):
    """
    Raised when a fetch against the remote store fails.

    Examples:
    - Store unreachable during initial load
    - Unknown entity name
    """


class StoreWriteError(StoreError):
    """
    Raised when an upsert, update or append is rejected.

    Callers at the auto-save and submission boundary convert this into an
    "unsaved" flag instead of letting it escape.
    """


class InvalidTransitionError(TabulationException):
    """Raised when a submission state transition is not allowed."""
    status_code = 409

    def __init__(self, message: str = "Invalid submission state transition"):
        super().__init__(message, self.status_code)


class NotFoundError(TabulationException):
    """
    Raised when requested resource doesn't exist.
    """
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, self.status_code)
