"""
Custom exceptions for the Fee Portal.
"""

from typing import Optional, Any, Dict


class FeePortalException(Exception):
    """Base exception for all Fee Portal errors."""
    
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationError(FeePortalException):
    """Raised when data validation fails."""
    pass


class DuplicateEmailError(FeePortalException):
    """Raised when a change would give two students the same email."""
    
    def __init__(self, email: str, existing_id: Optional[str] = None):
        super().__init__(
            f"Email already exists: {email}",
            error_code="duplicate_email",
            details={"email": email, "existing_id": existing_id},
        )
        self.email = email


class NotFoundError(FeePortalException):
    """Raised when a student id is not in the collection."""
    
    def __init__(self, student_id: str):
        super().__init__(
            f"Student not found: {student_id}",
            error_code="not_found",
            details={"student_id": student_id},
        )
        self.student_id = student_id


class NoSessionError(FeePortalException):
    """Raised when an operation needs a logged-in student and there is none."""
    
    def __init__(self, operation: str):
        super().__init__(
            f"No active session for {operation}",
            error_code="no_session",
            details={"operation": operation},
        )


class PersistenceError(FeePortalException):
    """Raised when persistence operations fail."""
    pass


class SyncError(FeePortalException):
    """Raised when the sync channel cannot deliver or decode a message."""
    pass


class ConfigurationError(FeePortalException):
    """Raised when configuration is invalid."""
    pass
