from typing import Optional, Any

class MeetStatsError(Exception):
    """
    Base exception for the meeting statistics service.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class AuthenticationError(MeetStatsError):
    """
    Raised when no authenticated identity can be resolved.
    """
    def __init__(self, message: str = "Not authenticated", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)

class ValidationError(MeetStatsError):
    """
    Raised when a request is well-formed but semantically invalid.
    """
    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400, details=details)

class StoreError(MeetStatsError):
    """
    Raised when MongoDB is unreachable or rejects a write.
    """
    def __init__(self, message: str = "Statistics store unavailable", details: Optional[Any] = None):
        super().__init__(message, code="STORE_ERROR", status_code=500, details=details)
