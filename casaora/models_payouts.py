from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class BalanceClearance(Base):
    """Earnings waiting out the 24-hour hold before becoming available"""

    __tablename__ = "balance_clearance_queue"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    amount_cop = Column(Integer, nullable=False)
    completed_at = Column(DateTime, nullable=False)
    clearance_at = Column(DateTime, index=True, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, cleared
    cleared_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class PayoutRateLimit(Base):
    __tablename__ = "payout_rate_limits"
    __table_args__ = (UniqueConstraint("professional_id", "payout_date", name="uq_payout_rate_day"),)

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    payout_date = Column(Date, nullable=False)
    instant_payout_count = Column(Integer, default=0, nullable=False)


class PayoutTransfer(Base):
    __tablename__ = "payout_transfers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    professional_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    payout_type = Column(String(20), default="batch", nullable=False)  # batch, instant
    gross_amount = Column(Integer, nullable=False)
    commission_amount = Column(Integer, default=0, nullable=False)
    fee_amount = Column(Integer, default=0, nullable=False)
    net_amount = Column(Integer, nullable=False)
    currency = Column(String(3), default="COP", nullable=False)
    # pending, processing, paid, failed
    status = Column(String(20), default="pending", nullable=False)
    stripe_transfer_id = Column(String(255), nullable=True, index=True)
    booking_ids = Column(JSON, default=list)
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PlatformSetting(Base):
    __tablename__ = "platform_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PricingRule(Base):
    """Commission override for a service category and/or city"""

    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True)
    service_category = Column(String(100), nullable=True)  # null = any category
    city = Column(String(120), nullable=True)  # null = any city
    commission_rate = Column(Float, nullable=False)
    effective_from = Column(Date, nullable=False)
    effective_until = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class TrialCredit(Base):
    __tablename__ = "trial_credits"
    __table_args__ = (
        UniqueConstraint("customer_id", "professional_id", name="uq_trial_credit_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    total_bookings_count = Column(Integer, default=0, nullable=False)
    total_bookings_value_cop = Column(Integer, default=0, nullable=False)
    credit_earned_cop = Column(Integer, default=0, nullable=False)
    credit_used_cop = Column(Integer, default=0, nullable=False)
    credit_remaining_cop = Column(Integer, default=0, nullable=False)
    credit_applied_to_booking_id = Column(String(36), nullable=True)
    last_booking_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
