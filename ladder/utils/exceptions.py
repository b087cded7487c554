"""
Custom exceptions for the ladder engine with user-friendly error messages.
"""

class LadderError(Exception):
    """Base exception for ladder errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class PersistenceError(LadderError):
    """Raised when the durable mirror cannot be read or written."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Persistence error during {operation}: {details}",
            "Could not save changes. Please try again later."
        )
        self.operation = operation

class MatchOperationError(LadderError):
    """Base exception for match operation errors"""
    default_reason = "match_error"

    def __init__(self, message: str, user_message: str = None, reason: str = None):
        super().__init__(message, user_message)
        self.reason = reason or self.default_reason

class MatchValidationError(MatchOperationError):
    """Raised when match data validation fails"""
    default_reason = "invalid_report"

class MatchStateError(MatchOperationError):
    """Raised when match is in invalid state for operation"""
    default_reason = "invalid_state"

class TeamSplitError(MatchOperationError):
    """Raised when a team split is not a valid partition of the roster"""
    default_reason = "invalid_split"
