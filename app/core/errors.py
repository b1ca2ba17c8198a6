"""
Error taxonomy for authorization and lifecycle failures.

Every refusal the core produces carries one of a fixed set of reason codes.
Callers map the code to an HTTP status with HTTP_STATUS_BY_CODE; nothing
here is retried automatically.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable reason codes."""
    ACTOR_INACTIVE = "ActorInactive"
    UNAUTHORIZED = "Unauthorized"
    INSUFFICIENT_RANK = "InsufficientRank"
    CROSS_COMPANY = "CrossCompany"
    SELF_ACTION_FORBIDDEN = "SelfActionForbidden"
    NOT_FOUND = "NotFound"
    VALIDATION_ERROR = "ValidationError"
    INVALID_TRANSITION = "InvalidTransition"
    ALREADY_DISPATCHED = "AlreadyDispatched"
    REPORT_CLOSED = "ReportClosed"
    CONFLICT = "Conflict"
    INTERNAL = "Internal"


HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.ACTOR_INACTIVE: 401,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.INSUFFICIENT_RANK: 403,
    ErrorCode.CROSS_COMPANY: 403,
    ErrorCode.SELF_ACTION_FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.ALREADY_DISPATCHED: 409,
    ErrorCode.REPORT_CLOSED: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INTERNAL: 500,
}

# User-facing messages, one per code
DEFAULT_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.ACTOR_INACTIVE: "Your account is not active",
    ErrorCode.UNAUTHORIZED: "Authentication required",
    ErrorCode.INSUFFICIENT_RANK: "You do not have permission to perform this action",
    ErrorCode.CROSS_COMPANY: "This record belongs to another company",
    ErrorCode.SELF_ACTION_FORBIDDEN: "You cannot perform this action on your own account",
    ErrorCode.NOT_FOUND: "Record not found",
    ErrorCode.VALIDATION_ERROR: "Invalid request",
    ErrorCode.INVALID_TRANSITION: "This status change is not allowed",
    ErrorCode.ALREADY_DISPATCHED: "This report already has an active dispatch",
    ErrorCode.REPORT_CLOSED: "This report is closed",
    ErrorCode.CONFLICT: "The record was modified by another request, reload and retry",
    ErrorCode.INTERNAL: "Internal server error",
}


class PolicyError(Exception):
    """
    Raised by the core when a request is refused.

    Attributes:
        code: ErrorCode reason
        message: Human readable explanation (safe to show to the caller,
            except for INTERNAL which is always rendered opaquely)
    """

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.message = message or DEFAULT_MESSAGES[code]
        super().__init__(f"{code.value}: {self.message}")

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self) -> Dict[str, str]:
        message = DEFAULT_MESSAGES[ErrorCode.INTERNAL] if self.code == ErrorCode.INTERNAL else self.message
        return {"detail": message, "code": self.code.value}


def not_found(kind: str, record_id: str) -> PolicyError:
    return PolicyError(ErrorCode.NOT_FOUND, f"{kind} {record_id} not found")


def validation_error(message: str) -> PolicyError:
    return PolicyError(ErrorCode.VALIDATION_ERROR, message)
