import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a UUID string primary key (matches Supabase auth user ids)"""
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the auth user (JWT "sub")
    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    phone_number = Column(String(50), index=True, nullable=True)
    role = Column(String(20), default="customer", nullable=False)  # customer, professional, admin
    city = Column(String(120), nullable=True)
    country = Column(String(2), default="CO", nullable=False)  # ISO country code
    locale = Column(String(5), default="es", nullable=False)
    # active, suspended, banned
    account_status = Column(String(20), default="active", nullable=False)
    suspended_until = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    professional_profile = relationship(
        "ProfessionalProfile", back_populates="profile", uselist=False
    )


class ProfessionalProfile(Base):
    __tablename__ = "professional_profiles"

    profile_id = Column(String(36), ForeignKey("profiles.id"), primary_key=True)
    bio = Column(Text, nullable=True)
    primary_services = Column(JSON, default=list)  # ["deep cleaning", "cooking"]
    skills = Column(JSON, default=list)
    languages = Column(JSON, default=list)  # ["spanish", "english"]
    experience_years = Column(Integer, default=0, nullable=False)
    hourly_rate_cop = Column(Integer, nullable=True)  # Minor units
    service_category = Column(String(100), nullable=True)
    verification_level = Column(String(20), default="basic", nullable=False)
    background_check_passed = Column(Boolean, default=False, nullable=False)
    has_insurance = Column(Boolean, default=False, nullable=False)
    pet_friendly = Column(Boolean, default=False, nullable=False)
    eco_friendly = Column(Boolean, default=False, nullable=False)
    # {"weekdays": true, "weekends": false, "evenings": false}
    availability_flags = Column(JSON, default=dict)
    # {"working_hours": {...}, "buffer_time_minutes": 30, "max_bookings_per_day": 5}
    availability_settings = Column(JSON, default=dict)
    # {"min_notice_hours": 24, "max_booking_duration_hours": 8, "auto_accept_recurring": false}
    instant_booking_settings = Column(JSON, nullable=True)
    blocked_dates = Column(JSON, default=list)  # ["2025-01-01"]
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Career stats
    rating = Column(Float, default=0.0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)
    total_completed_bookings = Column(Integer, default=0, nullable=False)
    total_earnings_cop = Column(Integer, default=0, nullable=False)
    on_time_rate = Column(Float, default=1.0, nullable=False)

    # Balance (instant payouts)
    available_balance_cents = Column(Integer, default=0, nullable=False)
    pending_balance_cents = Column(Integer, default=0, nullable=False)
    last_balance_update = Column(DateTime, nullable=True)
    instant_payout_enabled = Column(Boolean, default=True, nullable=False)
    stripe_connect_account_id = Column(String(255), nullable=True)
    stripe_connect_onboarding_status = Column(String(50), nullable=True)  # pending, complete

    profile = relationship("Profile", back_populates="professional_profile")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    customer_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    scheduled_start = Column(DateTime, nullable=True)
    scheduled_end = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    # pending_payment, confirmed, in_progress, completed, cancelled, customer_cancelled, declined
    status = Column(String(30), default="pending_payment", nullable=False, index=True)
    amount_estimated = Column(Integer, nullable=False)
    amount_authorized = Column(Integer, nullable=True)
    amount_captured = Column(Integer, nullable=True)
    amount_refunded = Column(Integer, nullable=True)
    time_extension_minutes = Column(Integer, default=0, nullable=False)
    time_extension_amount = Column(Integer, default=0, nullable=False)
    currency = Column(String(3), default="COP", nullable=False)
    country = Column(String(2), default="CO", nullable=False)
    special_instructions = Column(Text, nullable=True)
    address = Column(JSON, nullable=True)
    service_name = Column(String(255), nullable=True)
    service_category = Column(String(100), nullable=True)
    service_hourly_rate = Column(Integer, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)

    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_payment_status = Column(String(50), nullable=True)

    checked_in_at = Column(DateTime, nullable=True)
    check_in_latitude = Column(Float, nullable=True)
    check_in_longitude = Column(Float, nullable=True)
    checked_out_at = Column(DateTime, nullable=True)
    check_out_latitude = Column(Float, nullable=True)
    check_out_longitude = Column(Float, nullable=True)
    actual_duration_minutes = Column(Integer, nullable=True)
    completion_notes = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    rebook_nudge_variant = Column(String(10), nullable=True)  # 24h, 72h
    rebook_nudge_sent = Column(Boolean, default=False, nullable=False)
    rebook_nudge_sent_at = Column(DateTime, nullable=True)

    payout_transfer_id = Column(String(36), ForeignKey("payout_transfers.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Profile", foreign_keys=[customer_id])
    professional = relationship("Profile", foreign_keys=[professional_id])


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, approved, rejected
    sentiment = Column(String(20), nullable=True)
    severity = Column(String(20), nullable=True)
    flags = Column(JSON, default=list)
    analysis = Column(JSON, nullable=True)
    moderation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class RebookNudgeExperiment(Base):
    __tablename__ = "rebook_nudge_experiments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    variant = Column(String(10), nullable=False)
    nudge_sent_at = Column(DateTime, nullable=True)
    rebooked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ModerationAction(Base):
    __tablename__ = "moderation_actions"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    action = Column(String(20), nullable=False)  # suspend, unsuspend, ban, warn
    reason = Column(Text, nullable=True)
    risk_score = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class StripeWebhookEvent(Base):
    __tablename__ = "stripe_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime, server_default=func.now())


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    notification_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("customer_id", "professional_id", name="uq_conversation_pair"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    customer_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True)
    customer_unread_count = Column(Integer, default=0, nullable=False)
    professional_unread_count = Column(Integer, default=0, nullable=False)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), index=True, nullable=False)
    sender_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    body = Column(Text, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")


class AmaraConversation(Base):
    __tablename__ = "amara_conversations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    locale = Column(String(5), default="en", nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    messages = relationship(
        "AmaraMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="AmaraMessage.id",
    )


class AmaraMessage(Base):
    __tablename__ = "amara_messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        String(36), ForeignKey("amara_conversations.id"), index=True, nullable=False
    )
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    tool_results = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    conversation = relationship("AmaraConversation", back_populates="messages")
