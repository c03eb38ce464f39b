"""Domain error taxonomy shared by the escrow and reputation services.

Every expected failure carries a stable ``code`` and a caller-safe message;
routers translate them to HTTP responses via :meth:`KindKartError.to_detail`.
Messages never embed another user's balances or identifiers.
"""
from __future__ import annotations


class KindKartError(RuntimeError):
    """Base class for expected, user-facing service failures."""

    code = "error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


# Validation


class ValidationFailedError(KindKartError):
    code = "validation_error"
    default_message = "Missing or malformed fields"


class InvalidAmountError(ValidationFailedError):
    code = "invalid_amount"
    default_message = "Amount must be a positive number of paise"


class MissingReasonError(ValidationFailedError):
    code = "missing_reason"
    default_message = "Dispute reason is required"


class InvalidAssignmentError(ValidationFailedError):
    code = "invalid_assignment"
    default_message = "Invalid helper assignment"


# Authorization


class ForbiddenError(KindKartError):
    code = "forbidden"
    status_code = 403
    default_message = "Permission denied"


# Not found


class NotFoundError(KindKartError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class RequestNotFoundError(NotFoundError):
    code = "request_not_found"
    default_message = "Request not found"


class TransactionNotFoundError(NotFoundError):
    code = "transaction_not_found"
    default_message = "Transaction not found"


class BadgeNotFoundError(NotFoundError):
    code = "badge_not_found"
    default_message = "Badge not found"


class CommunityNotFoundError(NotFoundError):
    code = "community_not_found"
    default_message = "Community not found"


# Conflict


class ConflictError(KindKartError):
    code = "conflict"
    status_code = 409


class DuplicatePaymentError(ConflictError):
    code = "duplicate_payment"
    status_code = 400
    default_message = "Payment already exists for this request"


class NoActiveEscrowError(ConflictError):
    code = "no_active_escrow"
    status_code = 400
    default_message = "No active escrow found"


class BadgeAlreadyAwardedError(ConflictError):
    code = "badge_already_awarded"
    default_message = "User already has this badge"


class EscrowConcurrencyError(ConflictError):
    code = "concurrent_update"
    default_message = "Escrow was modified concurrently, retry the request"


# External failure


class GatewayUnavailableError(KindKartError):
    code = "gateway_unavailable"
    status_code = 502
    default_message = "Payment gateway is unavailable, please retry"


# Integrity


class InvalidSignatureError(KindKartError):
    code = "invalid_signature"
    default_message = "Invalid payment signature"


__all__ = [
    "BadgeAlreadyAwardedError",
    "BadgeNotFoundError",
    "CommunityNotFoundError",
    "ConflictError",
    "DuplicatePaymentError",
    "EscrowConcurrencyError",
    "ForbiddenError",
    "GatewayUnavailableError",
    "InvalidAmountError",
    "InvalidAssignmentError",
    "InvalidSignatureError",
    "KindKartError",
    "MissingReasonError",
    "NoActiveEscrowError",
    "NotFoundError",
    "RequestNotFoundError",
    "TransactionNotFoundError",
    "ValidationFailedError",
]
