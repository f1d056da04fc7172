"""
Typed failures raised by the relationship core.

Each class carries the HTTP status it maps to; ``unisocial.main`` renders
them as ``{"detail", "code", "details"}``. The same classes are used by the
WebSocket handlers, which send ``to_dict()`` back to the client.

Usage:
    from unisocial.core.exceptions import ConflictError

    if already_following:
        raise ConflictError("Already following this user")
"""

from typing import Any, Dict, Optional


class UniSocialError(Exception):
    """Base exception for all relationship errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(UniSocialError):
    """Self-action or malformed id"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="INVALID_ARGUMENT", details=details)


class NotFoundError(UniSocialError):
    """Missing user, request or edge"""

    status_code = 404

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Any = None):
        details: Dict[str, Any] = {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id is not None:
            details["resource_id"] = resource_id
        super().__init__(message, code="NOT_FOUND", details=details)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: Any):
        super().__init__(f"User with ID '{user_id}' not found", "User", user_id)


class ConflictError(UniSocialError):
    """A transition's precondition does not hold"""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


class TransactionAbortedError(UniSocialError):
    """The store aborted the transaction (lock, serialization failure, timeout). Retryable."""

    status_code = 503

    def __init__(self, message: str = "Transaction aborted, please try again"):
        super().__init__(message, code="TRANSACTION_ABORTED", details={"retryable": True})


class InternalError(UniSocialError):
    """Unexpected persistence failure"""

    status_code = 500

    def __init__(self, message: str = "Internal error"):
        super().__init__(message, code="INTERNAL_ERROR")
