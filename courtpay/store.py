import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from courtpay.errors import AlreadyPaid, StoreUnavailable, UnknownSession
from courtpay.models import DomainKind, PaymentRecord, utcnow

logger = logging.getLogger(__name__)


class PaymentRecordStore:
    """One PaymentRecord per Checkout Session id."""

    def find_by_session(self, db: Session, session_id: str) -> Optional[PaymentRecord]:
        try:
            return db.get(PaymentRecord, session_id)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable("Could not read payment record") from exc

    def create(
        self,
        db: Session,
        session_id: str,
        domain_kind: DomainKind,
        target_entity_id: str,
        amount_captured: int = 0,
        currency: str = "brl",
    ) -> PaymentRecord:
        existing = self.find_by_session(db, session_id)
        if existing:
            return existing

        record = PaymentRecord(
            session_id=session_id,
            domain_kind=DomainKind(domain_kind).value,
            target_entity_id=target_entity_id,
            status="pending",
            amount_captured=amount_captured,
            currency=currency,
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = self.find_by_session(db, session_id)
            if existing:
                return existing
            raise StoreUnavailable("Could not create payment record")
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable("Could not create payment record") from exc
        return record

    def mark_paid(
        self,
        db: Session,
        session_id: str,
        effect_id: str,
        amount_captured: int,
        platform_fee: Optional[int] = None,
        organizer_amount: Optional[int] = None,
        payment_reference: Optional[str] = None,
    ) -> PaymentRecord:
        try:
            updated = (
                db.query(PaymentRecord)
                .filter(
                    PaymentRecord.session_id == session_id,
                    PaymentRecord.applied_effect_id.is_(None),
                )
                .update(
                    {
                        PaymentRecord.status: "paid",
                        PaymentRecord.applied_effect_id: effect_id,
                        PaymentRecord.amount_captured: amount_captured,
                        PaymentRecord.platform_fee: platform_fee,
                        PaymentRecord.organizer_amount: organizer_amount,
                        PaymentRecord.payment_reference: payment_reference,
                        PaymentRecord.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable("Could not update payment record") from exc

        record = self.find_by_session(db, session_id)
        if record is None:
            raise UnknownSession(f"No payment record for session {session_id}")
        try:
            db.refresh(record)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable("Could not read payment record") from exc

        if not updated and record.applied_effect_id != effect_id:
            logger.error(
                "Payment record %s already settled with effect %s, refusing effect %s",
                session_id, record.applied_effect_id, effect_id,
            )
            raise AlreadyPaid(
                f"Session {session_id} is already paid with a different effect",
                details={"applied_effect_id": record.applied_effect_id, "effect_id": effect_id},
            )
        return record
