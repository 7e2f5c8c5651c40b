"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Booking, ProfessionalProfile, Profile, RebookNudgeExperiment


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_active_professional(db: Session, professional_id: str) -> Optional[ProfessionalProfile]:
        """Professional profile joined to an active, non-suspended account"""
        return (
            db.query(ProfessionalProfile)
            .join(Profile, Profile.id == ProfessionalProfile.profile_id)
            .filter(
                ProfessionalProfile.profile_id == professional_id,
                ProfessionalProfile.is_active.is_(True),
                Profile.role == "professional",
                Profile.account_status == "active",
            )
            .first()
        )

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        role: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Booking]:
        query = db.query(Booking)
        if role == "professional":
            query = query.filter(Booking.professional_id == user_id)
        elif role == "customer":
            query = query.filter(Booking.customer_id == user_id)
        else:
            query = query.filter(
                or_(Booking.customer_id == user_id, Booking.professional_id == user_id)
            )
        if status:
            query = query.filter(Booking.status == status)
        return (
            query.order_by(Booking.scheduled_start.desc().nullslast())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        booking = Booking(**booking_data)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        for key, value in updates.items():
            setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def delete_booking(db: Session, booking: Booking) -> None:
        db.delete(booking)
        db.commit()

    @staticmethod
    def create_nudge_experiment(
        db: Session, booking_id: str, customer_id: str, variant: str
    ) -> RebookNudgeExperiment:
        experiment = RebookNudgeExperiment(
            booking_id=booking_id, customer_id=customer_id, variant=variant
        )
        db.add(experiment)
        db.commit()
        return experiment

    @staticmethod
    def get_due_rebook_nudges(db: Session, completed_before: datetime, variant: str) -> list[Booking]:
        """Completed bookings in `variant` whose nudge delay has passed"""
        return (
            db.query(Booking)
            .filter(
                Booking.status == "completed",
                Booking.rebook_nudge_variant == variant,
                Booking.rebook_nudge_sent.is_(False),
                Booking.completed_at.isnot(None),
                Booking.completed_at <= completed_before,
            )
            .all()
        )

    @staticmethod
    def mark_rebooked(db: Session, customer_id: str, professional_id: str) -> int:
        """Flag open nudge experiments for this pair as converted"""
        experiments = (
            db.query(RebookNudgeExperiment)
            .join(Booking, Booking.id == RebookNudgeExperiment.booking_id)
            .filter(
                RebookNudgeExperiment.customer_id == customer_id,
                RebookNudgeExperiment.rebooked.is_(False),
                RebookNudgeExperiment.nudge_sent_at.isnot(None),
                Booking.professional_id == professional_id,
            )
            .all()
        )
        for experiment in experiments:
            experiment.rebooked = True
        return len(experiments)
