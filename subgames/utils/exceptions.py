"""
Custom exceptions for the scoring core with user-friendly error messages.

Every error carries a machine-readable ``kind`` for callers and a
``user_message`` that the Discord layer shows as-is.
"""

from typing import Optional


class ErrorKind:
    UNAUTHENTICATED = 'unauthenticated'
    NOT_FOUND = 'not_found'
    PERMISSION_DENIED = 'permission_denied'
    ALREADY_EXISTS = 'already_exists'
    DEADLINE_EXCEEDED = 'deadline_exceeded'
    FAILED_PRECONDITION = 'failed_precondition'
    RESOURCE_EXHAUSTED = 'resource_exhausted'
    INTERNAL = 'internal'


class SubGamesError(Exception):
    """Base exception for scoring-related errors."""
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class UnauthenticatedError(SubGamesError):
    """Raised when an operation needs a caller identity and none was given."""
    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self):
        super().__init__(
            "Caller identity missing",
            "❌ You must be signed in to do that."
        )


class SessionNotFoundError(SubGamesError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, session_id: str):
        super().__init__(
            f"Game session '{session_id}' not found",
            "❌ Game session not found. Start a new game."
        )


class SessionAlreadyUsedError(SubGamesError):
    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, session_id: str):
        super().__init__(
            f"Game session '{session_id}' already used",
            "❌ This game result was already submitted."
        )


class SessionOwnershipError(SubGamesError):
    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, session_id: str, user_id: str):
        super().__init__(
            f"User {user_id} does not own game session '{session_id}'",
            "❌ That game session belongs to someone else."
        )


class SessionExpiredError(SubGamesError):
    kind = ErrorKind.DEADLINE_EXCEEDED

    def __init__(self, session_id: str):
        super().__init__(
            f"Game session '{session_id}' expired",
            "❌ Your game session expired. Start a new game."
        )


class TooFastError(SubGamesError):
    """Raised when a game finished faster than its minimum play time."""
    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(self, game_type: str, elapsed: float, min_seconds: float):
        super().__init__(
            f"{game_type} finished in {elapsed:.2f}s, minimum is {min_seconds:g}s",
            "❌ That was suspiciously fast. Result rejected."
        )
        self.elapsed = elapsed


class TooSlowError(SubGamesError):
    """Raised when a game took longer than its maximum play time."""
    kind = ErrorKind.DEADLINE_EXCEEDED

    def __init__(self, game_type: str, elapsed: float, max_seconds: float):
        super().__init__(
            f"{game_type} finished in {elapsed:.2f}s, maximum is {max_seconds:g}s",
            "❌ You ran out of time for that game."
        )
        self.elapsed = elapsed


class NoPickError(SubGamesError):
    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(self, user_id: str, cycle_id: str):
        super().__init__(
            f"User {user_id} has no pick for cycle {cycle_id}",
            "❌ Pick a creator first before playing!"
        )


class UnknownGameTypeError(SubGamesError):
    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(self, game_type: str):
        super().__init__(
            f"No rules configured for game type '{game_type}'",
            f"❌ '{game_type}' is not a playable game."
        )


class CreatorNotFoundError(SubGamesError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, creator_id: str):
        super().__init__(
            f"Creator '{creator_id}' not found",
            "❌ That creator isn't registered."
        )


class InvalidCycleError(SubGamesError):
    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(self, cycle_id: str):
        super().__init__(
            f"Invalid cycle id '{cycle_id}'",
            "❌ Cycle ids look like 2025-11-12-18:00."
        )


class CycleNotClosedError(SubGamesError):
    """Raised when settling a cycle whose closing boundary has not passed yet."""
    kind = ErrorKind.FAILED_PRECONDITION

    def __init__(self, cycle_id: str):
        super().__init__(
            f"Cycle '{cycle_id}' has not closed yet",
            "❌ That cycle is still running. Winners are picked after it closes at 18:00."
        )


class RateLimitError(SubGamesError):
    """Raised when rate limit is exceeded."""
    kind = ErrorKind.RESOURCE_EXHAUSTED

    def __init__(self, action: str, retry_after: int):
        super().__init__(
            f"Rate limit exceeded for {action}, {retry_after}s remaining",
            f"❌ Please wait {retry_after} seconds before trying again."
        )
        self.action = action
        self.retry_after = retry_after


class DatabaseError(SubGamesError):
    """Raised when database operations fail."""

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "❌ Database error occurred. Please try again later."
        )


class TransactionError(SubGamesError):
    """Raised when a transaction keeps conflicting and retries run out."""

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Transaction failed for {operation} after {attempts} attempts",
            "❌ Failed to save your points. Please try again."
        )
