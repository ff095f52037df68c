"""
Domain error taxonomy for the lead / quote / order core.

Domain errors describe a problem with the caller's input or with the state of
an entity. Collaborator errors describe a failure of something outside the
core (product catalog, persistence) and are left to the caller to retry.
"""
from typing import Optional, Dict, Any


class DomainError(Exception):
    """Base class for every error the core reports to its callers"""
    code = "domain_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Malformed or missing input. `details` maps field name -> problem."""
    code = "validation_error"
    status_code = 422

    @property
    def fields(self) -> list:
        return list(self.details.keys())


class PreconditionError(DomainError):
    """Valid input, but the entity is in the wrong state"""
    code = "precondition_failed"
    status_code = 409


class InvalidTransitionError(DomainError):
    code = "invalid_transition"
    status_code = 409


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404


class UnknownEntityTransitionError(NotFoundError, InvalidTransitionError):
    """A transition was requested on an entity that does not exist"""
    code = "not_found"
    status_code = 404


class AlreadyConvertedError(DomainError):
    code = "already_converted"
    status_code = 409


class CreditLimitExceededError(DomainError):
    code = "credit_limit_exceeded"
    status_code = 402

    def __init__(self, account_id: str, requested: float, available: float):
        self.account_id = account_id
        self.requested = round(requested, 2)
        self.available = round(available, 2)
        self.shortfall = round(requested - available, 2)
        super().__init__(
            f"Insufficient credit. Available: {self.available:.2f}, Required: {self.requested:.2f}",
            {
                "account_id": account_id,
                "requested": self.requested,
                "available": self.available,
                "shortfall": self.shortfall,
            },
        )


class ConcurrentModificationError(DomainError):
    """The stored document changed between read and write"""
    code = "concurrent_modification"
    status_code = 409


# ==================== COLLABORATOR FAILURES ====================

class CollaboratorError(Exception):
    """An external collaborator (catalog, persistence) failed"""
    code = "collaborator_unavailable"
    status_code = 502

    def __init__(self, message: str, collaborator: str):
        super().__init__(message)
        self.message = message
        self.collaborator = collaborator

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.code,
            "message": self.message,
            "details": {"collaborator": self.collaborator},
        }


class ProductLookupError(CollaboratorError):
    def __init__(self, message: str):
        super().__init__(message, "product_catalog")
