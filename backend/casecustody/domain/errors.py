"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""
    
    error_code: str = "DOMAIN_ERROR"
    
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a serializable dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authorization Errors
class AuthorizationError(DomainError):
    """Actor lacks permission for action"""
    error_code = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """Specific permission denied"""
    error_code = "PERMISSION_DENIED"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"


class SupersessionChainError(ValidationError):
    """Supersession pointers do not form a forward-only chain"""
    error_code = "SUPERSESSION_CHAIN_INVALID"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"


class ReportNotFoundError(NotFoundError):
    """Report not found"""
    error_code = "REPORT_NOT_FOUND"


class CaseFolderNotFoundError(NotFoundError):
    """Case folder not found"""
    error_code = "CASE_FOLDER_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Operation conflicts with current state"""
    error_code = "CONFLICT"


class CaseNotClosedError(ConflictError):
    """Only a closed case can be deleted"""
    error_code = "CASE_NOT_CLOSED"


# Engine signal errors (raised only on request via EngineResult.raise_for_signal)
class EngineSignalError(DomainError):
    """Engine rejected an operation"""
    error_code = "ENGINE_REJECTED"


class InvalidTransitionError(EngineSignalError):
    """Requested status change is not in the transition table"""
    error_code = "INVALID_TRANSITION"


class ReportLockedError(EngineSignalError):
    """Report is locked and no override was supplied"""
    error_code = "LOCKED"


class CaseClosedError(EngineSignalError):
    """Owning case folder is closed"""
    error_code = "CASE_CLOSED"


class OpenDraftsExistError(EngineSignalError):
    """Case cannot close while unsent drafts remain"""
    error_code = "OPEN_DRAFTS_EXIST"


# Storage Errors
class PersistenceError(DomainError):
    """Persistence collaborator failure"""
    error_code = "PERSISTENCE_ERROR"
