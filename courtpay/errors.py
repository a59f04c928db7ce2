"""
Failure taxonomy for payment confirmation.

Every failure of ``ConfirmationHandler.confirm`` is one of these classes.
Each carries the HTTP status it maps to and whether the caller may retry
the same request later.
"""

from typing import Any, Dict, Optional


class ConfirmationError(Exception):
    """Base class for all classified confirmation failures."""

    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequest(ConfirmationError):
    """Raised when the caller did not send a usable session id."""

    status_code = 400


class VerifierUnreachable(ConfirmationError):
    """The payment provider could not be asked; safe to retry with backoff."""

    status_code = 503
    retryable = True


class PaymentNotConfirmed(ConfirmationError):
    """The provider has not settled the session as paid."""

    status_code = 402


class UnknownSession(ConfirmationError):
    """No payment record (or no provider session) exists for this id."""

    status_code = 404


class MissingMetadata(ConfirmationError):
    """The session was initiated without the metadata its effect needs."""

    status_code = 422


class MetadataMismatch(ConfirmationError):
    """Session metadata names a different target than the payment record."""

    status_code = 422


class UnknownAdType(ConfirmationError):
    status_code = 422


class DomainKindMismatch(ConfirmationError):
    status_code = 422


class AdTargetNotFound(ConfirmationError):
    status_code = 404


class AlreadyPaid(ConfirmationError):
    """A payment record was already settled with a different effect."""

    status_code = 409


class StoreUnavailable(ConfirmationError):
    """A database read or write failed; safe to retry."""

    status_code = 503
    retryable = True


class CorruptPaymentRecord(ConfirmationError):
    """A stored payment record holds values no confirmation path understands."""

    status_code = 500


class WebhookNotConfigured(ConfirmationError):
    """STRIPE_WEBHOOK_SECRET is missing, so events cannot be verified."""

    status_code = 500
