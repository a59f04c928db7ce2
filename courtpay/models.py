import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from courtpay.database import Base
from courtpay.errors import CorruptPaymentRecord


def utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


class DomainKind(str, enum.Enum):
    BOOKING = "booking"
    TOURNAMENT_REGISTRATION = "tournament_registration"
    AD_UPGRADE = "ad_upgrade"


class PaymentRecord(Base):
    __tablename__ = "payment_records"

    session_id = Column(String, primary_key=True)            # Stripe Checkout Session ID
    domain_kind = Column(String, nullable=False)             # booking | tournament_registration | ad_upgrade
    target_entity_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending")  # pending | paid | failed
    applied_effect_id = Column(String, nullable=True)
    amount_captured = Column(Integer, nullable=False, default=0)  # minor units
    platform_fee = Column(Integer, nullable=True)                 # minor units
    organizer_amount = Column(Integer, nullable=True)             # minor units
    payment_reference = Column(String, nullable=True)        # Stripe PaymentIntent ID
    currency = Column(String, nullable=False, default="brl")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def kind(self) -> DomainKind:
        try:
            return DomainKind(self.domain_kind)
        except ValueError:
            raise CorruptPaymentRecord(
                f"Payment record {self.session_id} has unknown domain kind {self.domain_kind!r}",
                details={"domain_kind": self.domain_kind},
            ) from None


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=False)
    court_id = Column(String, nullable=False, index=True)
    booking_date = Column(String, nullable=False)
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    payment_id = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default="paid")
    status = Column(String, nullable=False, default="confirmed")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class TournamentRegistration(Base):
    __tablename__ = "tournament_registrations"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=False)
    tournament_id = Column(String, nullable=False, index=True)
    payment_status = Column(String, nullable=False, default="paid")
    platform_fee = Column(Numeric(10, 2), nullable=False)
    organizer_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class AdPayment(Base):
    """One row per paid ad upgrade; the entity's own columns are overwritten by later upgrades."""

    __tablename__ = "ad_payments"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, nullable=False, unique=True, index=True)
    ad_type = Column(String, nullable=False)     # partner_search | court | instructor
    ad_id = Column(String, nullable=False, index=True)
    plan_name = Column(String, nullable=False)
    payment_id = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default="paid")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


# Advertisable entities. Rows are owned by the listing flows; payment
# confirmation only moves their plan and payment columns.

class PartnerSearch(Base):
    __tablename__ = "partner_search"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True)
    ad_plan = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default="pending")
    payment_id = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Court(Base):
    __tablename__ = "courts"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=True)
    ad_plan = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default="pending")
    ad_payment_id = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class InstructorInfo(Base):
    __tablename__ = "instructor_info"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True)
    ad_plan = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default="pending")
    ad_payment_id = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
