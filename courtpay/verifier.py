import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import stripe

from courtpay.errors import UnknownSession, VerifierUnreachable

logger = logging.getLogger(__name__)

PENDING = "pending"
PAID = "paid"
FAILED = "failed"
EXPIRED = "expired"


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    status: str                     # pending | paid | failed | expired
    amount_captured: int            # minor units
    metadata: Dict[str, str] = field(default_factory=dict)
    payment_reference: Optional[str] = None
    currency: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == PAID


class PaymentVerifier(Protocol):
    def retrieve_session(self, session_id: str) -> PaymentSession: ...


def _session_status(session) -> str:
    if getattr(session, "payment_status", None) == "paid":
        return PAID
    if getattr(session, "status", None) == "expired":
        return EXPIRED
    return PENDING


def _payment_reference(session) -> str:
    intent = getattr(session, "payment_intent", None)
    # payment_intent is an id unless the caller expanded it
    if intent is not None and not isinstance(intent, str):
        intent = getattr(intent, "id", None)
    return intent or session.id


class StripeVerifier:
    """Reads Checkout Sessions from Stripe with a bounded timeout."""

    def __init__(self, api_key: Optional[str], timeout: float = 10.0, max_network_retries: int = 2):
        if not api_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not set. Check your .env file.")
        stripe.api_key = api_key
        stripe.max_network_retries = max_network_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def retrieve_session(self, session_id: str) -> PaymentSession:
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.InvalidRequestError as exc:
            logger.warning("Stripe does not know session %s: %s", session_id, exc)
            raise UnknownSession(f"Payment session {session_id} not found at provider") from exc
        except stripe.StripeError as exc:
            logger.warning("Stripe unreachable while retrieving %s: %s", session_id, exc)
            raise VerifierUnreachable("Payment provider is unavailable, retry later") from exc

        return PaymentSession(
            session_id=session.id,
            status=_session_status(session),
            amount_captured=getattr(session, "amount_total", None) or 0,
            metadata={key: str(value) for key, value in dict(session.metadata or {}).items()},
            payment_reference=_payment_reference(session),
            currency=getattr(session, "currency", None),
        )
