"""Persistence for appointment records.

The store is the only shared mutable resource of the scheduling engine.
Writes go through ``add`` and ``save``, each a single commit; on any
database error the session is rolled back before the error propagates so
the caller never sees a half-written appointment.
"""

from datetime import date, time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.models.appointment import ACTIVE_STATUSES, Appointment


class AppointmentStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, appointment_id: int) -> Appointment | None:
        return self.db.get(Appointment, appointment_id)

    def get_by_token(self, token: str) -> Appointment | None:
        return self.db.query(Appointment).filter(Appointment.unique_token == token).first()

    def token_exists(self, token: str) -> bool:
        return self.db.query(Appointment.id).filter(Appointment.unique_token == token).first() is not None

    def find_active_on_date(self, specialist_id: int, appointment_date: date) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.specialist_id == specialist_id,
            Appointment.appointment_date == appointment_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).all()

    def find_active_at(
        self,
        specialist_id: int,
        appointment_date: date,
        appointment_time: time,
        exclude_id: int | None = None,
    ) -> Appointment | None:
        query = self.db.query(Appointment).filter(
            Appointment.specialist_id == specialist_id,
            Appointment.appointment_date == appointment_date,
            Appointment.appointment_time == appointment_time,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.first()

    def list_all(self) -> list[Appointment]:
        return self.db.query(Appointment).order_by(
            Appointment.appointment_date.desc(),
            Appointment.appointment_time.desc(),
        ).all()

    def list_by_status(self, status: str) -> list[Appointment]:
        return self.db.query(Appointment).filter(Appointment.status == status).order_by(
            Appointment.appointment_date.asc(),
            Appointment.appointment_time.asc(),
        ).all()

    def list_in_range(self, start_date: date, end_date: date) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.appointment_date >= start_date,
            Appointment.appointment_date <= end_date,
        ).order_by(
            Appointment.appointment_date.asc(),
            Appointment.appointment_time.asc(),
        ).all()

    def add(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        return self.save(appointment)

    def save(self, appointment: Appointment) -> Appointment:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(appointment)
        return appointment
