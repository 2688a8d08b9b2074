"""Appointment state machine and admin edits.

    pending   -> confirmed | cancelled
    confirmed -> completed | cancelled
    completed, cancelled: terminal

Slot occupancy is derived from status, so a cancellation frees its slot
for the next slot calculation without any further step.
"""

import logging
from datetime import date, datetime, timezone
from typing import NamedTuple

from sqlalchemy.exc import IntegrityError

from clinic_backend.core.errors import NotFound, SlotConflict, ValidationFailure
from clinic_backend.models.appointment import TERMINAL_STATUSES, Appointment, AppointmentStatus
from clinic_backend.notifications.email_queue import EmailKind, EmailQueue
from clinic_backend.notifications.webhooks import WebhookDispatcher, WebhookEvent
from clinic_backend.scheduling.booking import SLOT_JUST_TAKEN_MESSAGE, SLOT_UNAVAILABLE_MESSAGE
from clinic_backend.scheduling.slots import SlotCalculator, format_slot
from clinic_backend.scheduling.validation import (
    normalize_notes,
    parse_appointment_date,
    parse_slot_time,
    validate_grid_time,
    validate_patient_email,
    validate_patient_name,
    validate_patient_phone,
)
from clinic_backend.stores.appointment_store import AppointmentStore
from clinic_backend.stores.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING.value: {AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value},
    AppointmentStatus.CONFIRMED.value: {AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value},
    AppointmentStatus.COMPLETED.value: set(),
    AppointmentStatus.CANCELLED.value: set(),
}

CONFIRM_DECISIONS = {AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value}

_UNSET = object()


class AppointmentChanges(NamedTuple):
    """Fields an admin may change; ``None`` leaves a field untouched."""
    specialty_id: int | None = None
    specialist_id: int | None = None
    appointment_date: str | date | None = None
    appointment_time: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None
    patient_phone: str | None = None
    notes: object = _UNSET


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class LifecycleManager:
    def __init__(
        self,
        appointments: AppointmentStore,
        catalog: CatalogStore,
        slots: SlotCalculator,
        emails: EmailQueue | None = None,
        webhooks: WebhookDispatcher | None = None,
    ):
        self.appointments = appointments
        self.catalog = catalog
        self.slots = slots
        self.emails = emails
        self.webhooks = webhooks

    # Queries

    def get(self, appointment_id: int) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise NotFound('Appointment not found.')
        return appointment

    def get_by_token(self, token: str) -> Appointment:
        appointment = self.appointments.get_by_token(token)
        if appointment is None:
            raise NotFound('Appointment not found.')
        return appointment

    def list_all(self) -> list[Appointment]:
        return self.appointments.list_all()

    def list_by_status(self, status: AppointmentStatus | str) -> list[Appointment]:
        return self.appointments.list_by_status(AppointmentStatus(status).value)

    def list_in_range(self, start_date: str | date, end_date: str | date) -> list[Appointment]:
        start = parse_appointment_date(start_date)
        end = parse_appointment_date(end_date)
        if end < start:
            raise ValidationFailure('End date must not be before start date.')
        return self.appointments.list_in_range(start, end)

    # Collaborators

    def _queue_email(self, kind: EmailKind, appointment: Appointment) -> None:
        if self.emails is None:
            return
        try:
            self.emails.enqueue(kind, appointment)
        except Exception:
            logger.exception('Email %s failed for appointment %s', kind.value, appointment.id)

    def _send_webhook(self, event: WebhookEvent, appointment: Appointment) -> None:
        if self.webhooks is not None:
            self.webhooks.notify(event, appointment)

    def _transition(self, appointment: Appointment, target: str) -> None:
        if not can_transition(appointment.status, target):
            raise ValidationFailure(f'Cannot change a {appointment.status} appointment to {target}.')
        previous = appointment.status
        appointment.status = target
        self.appointments.save(appointment)
        logger.info('Appointment %s moved from %s to %s', appointment.id, previous, target)

    # Transitions

    def confirm(self, appointment_id: int, decision: AppointmentStatus | str, acting_admin_id: int | None) -> Appointment:
        """Confirm or reject a pending appointment."""
        target = decision.value if isinstance(decision, AppointmentStatus) else str(decision)
        if target not in CONFIRM_DECISIONS:
            raise ValidationFailure('Decision must be either confirmed or cancelled.')

        appointment = self.get(appointment_id)
        if appointment.status != AppointmentStatus.PENDING.value:
            raise ValidationFailure('Only pending appointments can be confirmed or rejected.')

        if target == AppointmentStatus.CONFIRMED.value:
            appointment.confirmed_at = datetime.now(timezone.utc)
            appointment.confirmed_by_id = acting_admin_id
        self._transition(appointment, target)

        if target == AppointmentStatus.CONFIRMED.value:
            self._queue_email(EmailKind.CONFIRMATION, appointment)
            self._send_webhook(WebhookEvent.CONFIRMED, appointment)
        else:
            self._send_webhook(WebhookEvent.CANCELLED, appointment)
        return appointment

    def complete(self, appointment_id: int) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment.status != AppointmentStatus.CONFIRMED.value:
            raise ValidationFailure('Only confirmed appointments can be completed.')

        self._transition(appointment, AppointmentStatus.COMPLETED.value)
        self._send_webhook(WebhookEvent.COMPLETED, appointment)
        return appointment

    def _cancel(self, appointment: Appointment) -> Appointment:
        if appointment.status == AppointmentStatus.COMPLETED.value:
            raise ValidationFailure('A completed appointment cannot be cancelled.')
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise ValidationFailure('This appointment is already cancelled.')

        self._transition(appointment, AppointmentStatus.CANCELLED.value)
        self._send_webhook(WebhookEvent.CANCELLED, appointment)
        return appointment

    def cancel_by_token(self, token: str) -> Appointment:
        return self._cancel(self.get_by_token(token))

    def cancel(self, appointment_id: int) -> Appointment:
        return self._cancel(self.get(appointment_id))

    # Edits

    def edit(self, appointment_id: int, changes: AppointmentChanges) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment.status in TERMINAL_STATUSES:
            raise ValidationFailure('Completed or cancelled appointments cannot be edited.')

        specialty_id = appointment.specialty_id
        price = appointment.price
        if changes.specialty_id is not None and changes.specialty_id != appointment.specialty_id:
            specialty = self.catalog.get_specialty(changes.specialty_id)
            if specialty is None:
                raise NotFound('Specialty not found.')
            specialty_id = specialty.id
            price = specialty.base_price

        specialist_changed = (
            changes.specialist_id is not None and changes.specialist_id != appointment.specialist_id
        )
        specialist_id = appointment.specialist_id
        if specialist_changed:
            specialist = self.catalog.get_specialist(changes.specialist_id, specialty_id=specialty_id)
            if specialist is None:
                raise NotFound('Specialist not found or does not belong to this specialty.')
            specialist_id = specialist.id

        slot_date = appointment.appointment_date
        slot_time = appointment.appointment_time
        if changes.appointment_date is not None:
            slot_date = parse_appointment_date(changes.appointment_date)
        if changes.appointment_time is not None:
            slot_time = validate_grid_time(parse_slot_time(changes.appointment_time))

        if changes.appointment_date is not None or changes.appointment_time is not None or specialist_changed:
            unchanged_slot = (
                specialist_id == appointment.specialist_id
                and slot_date == appointment.appointment_date
                and format_slot(slot_time) == appointment.slot_time
            )
            if not unchanged_slot:
                if format_slot(slot_time) not in self.slots.compute_available_slots(specialist_id, slot_date):
                    raise SlotConflict(SLOT_UNAVAILABLE_MESSAGE)
                if self.appointments.find_active_at(
                    specialist_id, slot_date, slot_time, exclude_id=appointment.id,
                ) is not None:
                    raise SlotConflict(SLOT_JUST_TAKEN_MESSAGE)

        patient_name = appointment.patient_name
        patient_email = appointment.patient_email
        patient_phone = appointment.patient_phone
        if changes.patient_name is not None:
            patient_name = validate_patient_name(changes.patient_name)
        if changes.patient_email is not None:
            patient_email = validate_patient_email(changes.patient_email)
        if changes.patient_phone is not None:
            patient_phone = validate_patient_phone(changes.patient_phone)

        appointment.specialty_id = specialty_id
        appointment.price = price
        appointment.specialist_id = specialist_id
        appointment.appointment_date = slot_date
        appointment.appointment_time = slot_time
        appointment.patient_name = patient_name
        appointment.patient_email = patient_email
        appointment.patient_phone = patient_phone
        if changes.notes is not _UNSET:
            appointment.notes = normalize_notes(changes.notes)

        try:
            self.appointments.save(appointment)
        except IntegrityError as exc:
            raise SlotConflict(SLOT_UNAVAILABLE_MESSAGE) from exc

        logger.info('Appointment %s edited', appointment.id)
        self._queue_email(EmailKind.EDITED, appointment)
        return appointment
