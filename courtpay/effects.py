"""
Domain effects of a confirmed payment.

Each DomainKind has exactly one applier. An applier is idempotent on the
Checkout Session id: it first looks for an effect already tied to the
session, and only creates one when none exists. Creation relies on a store
level guarantee (a unique ``session_id`` column on the effect row, or on the
``ad_payments`` row that an ad upgrade writes with its entity update)
so that a concurrent duplicate resolves to the row that won.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from courtpay.errors import (
    AdTargetNotFound,
    ConfirmationError,
    MetadataMismatch,
    MissingMetadata,
    StoreUnavailable,
    UnknownAdType,
)
from courtpay.fees import DEFAULT_PLATFORM_FEE_RATE, split_platform_fee, to_major_units, to_minor_units
from courtpay.models import (
    AdPayment,
    Booking,
    Court,
    DomainKind,
    InstructorInfo,
    PartnerSearch,
    PaymentRecord,
    TournamentRegistration,
    utcnow,
)
from courtpay.verifier import PaymentSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedEffect:
    effect_id: str
    created: bool
    platform_fee: Optional[int] = None       # minor units
    organizer_amount: Optional[int] = None   # minor units


class EffectApplier:
    kind: DomainKind
    required_keys: Tuple[str, ...] = ()
    target_key: str = ""

    def __init__(self, platform_fee_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE):
        self.platform_fee_rate = platform_fee_rate

    def apply(self, db: Session, record: PaymentRecord, session: PaymentSession) -> AppliedEffect:
        metadata = self.validated_metadata(record, session)
        existing = self.find_existing(db, record, session)
        if existing:
            logger.info("%s effect %s already exists for session %s",
                        self.kind.value, existing.effect_id, record.session_id)
            return existing
        return self.create(db, record, session, metadata)

    def validated_metadata(self, record: PaymentRecord, session: PaymentSession) -> Mapping[str, str]:
        metadata = session.metadata or {}
        missing = [key for key in self.required_keys if not metadata.get(key)]
        if missing:
            raise MissingMetadata(
                f"Session {record.session_id} is missing metadata: {', '.join(missing)}",
                details={"missing": missing},
            )
        # metadata is only trusted where it agrees with the record written at initiation
        if metadata[self.target_key] != record.target_entity_id:
            raise MetadataMismatch(
                f"Session {record.session_id} metadata targets {metadata[self.target_key]}, "
                f"record targets {record.target_entity_id}",
            )
        return metadata

    def find_existing(self, db: Session, record: PaymentRecord, session: PaymentSession) -> Optional[AppliedEffect]:
        raise NotImplementedError

    def create(
        self,
        db: Session,
        record: PaymentRecord,
        session: PaymentSession,
        metadata: Mapping[str, str],
    ) -> AppliedEffect:
        raise NotImplementedError

    def _insert_once(
        self,
        db: Session,
        row,
        record: PaymentRecord,
        session: PaymentSession,
        before_commit: Optional[Callable[[], None]] = None,
    ) -> Optional[AppliedEffect]:
        """
        Insert a row keyed on session_id; return the winner's effect if a duplicate raced us.

        ``before_commit`` runs after the row is flushed and inside the same
        transaction, so its writes commit or roll back together with the row.
        """
        db.add(row)
        try:
            if before_commit is not None:
                db.flush()
                before_commit()
            db.commit()
        except ConfirmationError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            existing = self.find_existing(db, record, session)
            if existing is None:
                raise StoreUnavailable(f"Could not store {self.kind.value} effect") from exc
            logger.info("Concurrent confirmation of %s won, reusing %s effect %s",
                        record.session_id, self.kind.value, existing.effect_id)
            return existing
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable(f"Could not store {self.kind.value} effect") from exc
        return None

    def _first(self, db: Session, model, **filters):
        try:
            return db.query(model).filter_by(**filters).first()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable(f"Could not read {self.kind.value} effect") from exc


class BookingApplier(EffectApplier):
    kind = DomainKind.BOOKING
    required_keys = ("userId", "courtId", "bookingDate", "startTime", "endTime")
    target_key = "courtId"

    def find_existing(self, db, record, session):
        booking = self._first(db, Booking, session_id=record.session_id)
        if booking is None:
            return None
        return AppliedEffect(effect_id=booking.id, created=False)

    def create(self, db, record, session, metadata):
        booking = Booking(
            session_id=record.session_id,
            user_id=metadata["userId"],
            court_id=metadata["courtId"],
            booking_date=metadata["bookingDate"],
            start_time=metadata["startTime"],
            end_time=metadata["endTime"],
            total_price=to_major_units(session.amount_captured),
            payment_id=session.payment_reference,
            payment_status="paid",
            status="confirmed",
        )
        raced = self._insert_once(db, booking, record, session)
        if raced:
            return raced
        logger.info("Booking %s created for court %s (session %s)",
                    booking.id, booking.court_id, record.session_id)
        return AppliedEffect(effect_id=booking.id, created=True)


class TournamentRegistrationApplier(EffectApplier):
    kind = DomainKind.TOURNAMENT_REGISTRATION
    required_keys = ("userId", "tournamentId")
    target_key = "tournamentId"

    @staticmethod
    def _describe(registration: TournamentRegistration, created: bool) -> AppliedEffect:
        return AppliedEffect(
            effect_id=registration.id,
            created=created,
            platform_fee=to_minor_units(Decimal(registration.platform_fee)),
            organizer_amount=to_minor_units(Decimal(registration.organizer_amount)),
        )

    def find_existing(self, db, record, session):
        registration = self._first(db, TournamentRegistration, session_id=record.session_id)
        if registration is None:
            return None
        return self._describe(registration, created=False)

    def create(self, db, record, session, metadata):
        platform_fee, organizer_amount = split_platform_fee(session.amount_captured, self.platform_fee_rate)
        registration = TournamentRegistration(
            session_id=record.session_id,
            user_id=metadata["userId"],
            tournament_id=metadata["tournamentId"],
            payment_status="paid",
            platform_fee=platform_fee,
            organizer_amount=organizer_amount,
        )
        raced = self._insert_once(db, registration, record, session)
        if raced:
            return raced
        logger.info("Tournament registration %s created for tournament %s (fee %s, organizer %s)",
                    registration.id, registration.tournament_id, platform_fee, organizer_amount)
        return self._describe(registration, created=True)


# ad_type -> (entity model, column holding the provider payment reference)
AD_TARGETS = {
    "partner_search": (PartnerSearch, "payment_id"),
    "court": (Court, "ad_payment_id"),
    "instructor": (InstructorInfo, "ad_payment_id"),
}


class AdUpgradeApplier(EffectApplier):
    kind = DomainKind.AD_UPGRADE
    required_keys = ("ad_type", "ad_id", "plan_name")
    target_key = "ad_id"

    def validated_metadata(self, record, session):
        metadata = super().validated_metadata(record, session)
        if metadata["ad_type"] not in AD_TARGETS:
            raise UnknownAdType(
                f"Unknown ad type {metadata['ad_type']!r} for session {record.session_id}",
                details={"ad_type": metadata["ad_type"], "allowed": sorted(AD_TARGETS)},
            )
        return metadata

    @staticmethod
    def _reference(session: PaymentSession) -> str:
        return session.payment_reference or session.session_id

    def find_existing(self, db, record, session):
        # the ad row itself is overwritten by later upgrades; only ad_payments is per session
        ad_payment = self._first(db, AdPayment, session_id=record.session_id)
        if ad_payment is None:
            return None
        return AppliedEffect(effect_id=ad_payment.ad_id, created=False)

    def create(self, db, record, session, metadata):
        model, reference_attr = AD_TARGETS[metadata["ad_type"]]
        reference = self._reference(session)
        ad_payment = AdPayment(
            session_id=record.session_id,
            ad_type=metadata["ad_type"],
            ad_id=record.target_entity_id,
            plan_name=metadata["plan_name"],
            payment_id=reference,
            payment_status="paid",
        )

        def upgrade_entity():
            updated = (
                db.query(model)
                .filter(model.id == record.target_entity_id)
                .update(
                    {
                        model.ad_plan: metadata["plan_name"],
                        model.payment_status: "paid",
                        getattr(model, reference_attr): reference,
                        model.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                raise AdTargetNotFound(
                    f"{metadata['ad_type']} {record.target_entity_id} does not exist",
                )

        raced = self._insert_once(db, ad_payment, record, session, before_commit=upgrade_entity)
        if raced:
            return raced
        logger.info("Ad payment confirmed: %s %s upgraded to %s",
                    metadata["ad_type"], record.target_entity_id, metadata["plan_name"])
        return AppliedEffect(effect_id=record.target_entity_id, created=True)


APPLIER_TYPES = {
    DomainKind.BOOKING: BookingApplier,
    DomainKind.TOURNAMENT_REGISTRATION: TournamentRegistrationApplier,
    DomainKind.AD_UPGRADE: AdUpgradeApplier,
}

_unhandled = set(DomainKind) - set(APPLIER_TYPES)
if _unhandled:
    raise RuntimeError(f"No effect applier for: {sorted(kind.value for kind in _unhandled)}")


def build_appliers(platform_fee_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE) -> Dict[DomainKind, EffectApplier]:
    return {kind: applier_type(platform_fee_rate) for kind, applier_type in APPLIER_TYPES.items()}
