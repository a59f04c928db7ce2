"""
Payment confirmation orchestration.

``ConfirmationHandler.confirm`` turns a Checkout Session id into exactly one
domain effect. It is safe to call any number of times for the same session,
concurrently or not: the effect stores are keyed on the session id and the
payment record caches which effect was applied.
"""

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from courtpay.effects import AppliedEffect, EffectApplier, build_appliers
from courtpay.errors import (
    AlreadyPaid,
    ConfirmationError,
    CorruptPaymentRecord,
    DomainKindMismatch,
    InvalidRequest,
    PaymentNotConfirmed,
    UnknownSession,
)
from courtpay.fees import DEFAULT_PLATFORM_FEE_RATE
from courtpay.models import DomainKind, PaymentRecord
from courtpay.store import PaymentRecordStore
from courtpay.verifier import PaymentVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationResult:
    session_id: str
    domain_kind: str
    target_entity_id: str
    effect_id: str
    already_applied: bool
    amount_captured: int
    platform_fee: Optional[int] = None
    organizer_amount: Optional[int] = None

    @classmethod
    def from_record(cls, record: PaymentRecord, already_applied: bool) -> "ConfirmationResult":
        return cls(
            session_id=record.session_id,
            domain_kind=record.domain_kind,
            target_entity_id=record.target_entity_id,
            effect_id=record.applied_effect_id,
            already_applied=already_applied,
            amount_captured=record.amount_captured,
            platform_fee=record.platform_fee,
            organizer_amount=record.organizer_amount,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, **asdict(self)}


class ConfirmationHandler:
    def __init__(
        self,
        verifier: PaymentVerifier,
        session_factory: "sessionmaker[Session]",
        store: Optional[PaymentRecordStore] = None,
        appliers: Optional[Dict[DomainKind, EffectApplier]] = None,
        platform_fee_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE,
    ) -> None:
        self.verifier = verifier
        self.session_factory = session_factory
        self.store = store or PaymentRecordStore()
        self.appliers: Dict[DomainKind, EffectApplier] = appliers or build_appliers(platform_fee_rate)

    def confirm(self, session_id: str, expected_kind: Optional[DomainKind] = None) -> ConfirmationResult:
        session_id = (session_id or "").strip()
        if not session_id:
            raise InvalidRequest("Session ID is required")

        try:
            return self._confirm(session_id, expected_kind)
        except (AlreadyPaid, CorruptPaymentRecord) as exc:
            logger.error("Data integrity failure confirming %s: %s (%s)", session_id, exc.message, exc.code)
            raise
        except ConfirmationError as exc:
            logger.warning("Confirmation of %s failed: %s (%s)", session_id, exc.message, exc.code)
            raise

    def _confirm(self, session_id: str, expected_kind: Optional[DomainKind]) -> ConfirmationResult:
        logger.info("Confirming payment for session %s", session_id)
        session = self.verifier.retrieve_session(session_id)
        if not session.is_paid:
            raise PaymentNotConfirmed(
                f"Payment not completed for session {session_id}",
                details={"status": session.status},
            )

        with self.session_factory() as db:
            record = self.store.find_by_session(db, session_id)
            if record is None:
                raise UnknownSession(f"No payment was initiated for session {session_id}")

            kind = record.kind
            if expected_kind is not None and kind != DomainKind(expected_kind):
                raise DomainKindMismatch(
                    f"Session {session_id} pays for {kind.value}, not {DomainKind(expected_kind).value}",
                )

            if record.status == "paid" and record.applied_effect_id:
                logger.info("Session %s already confirmed with effect %s", session_id, record.applied_effect_id)
                return ConfirmationResult.from_record(record, already_applied=True)

            effect: AppliedEffect = self.appliers[kind].apply(db, record, session)

            record = self.store.mark_paid(
                db,
                session_id,
                effect_id=effect.effect_id,
                amount_captured=session.amount_captured,
                platform_fee=effect.platform_fee,
                organizer_amount=effect.organizer_amount,
                payment_reference=session.payment_reference,
            )
            logger.info("Payment confirmed: session %s -> %s %s", session_id, kind.value, effect.effect_id)
            return ConfirmationResult.from_record(record, already_applied=not effect.created)
