"""Booking of new appointments.

Two checks guard a slot before it is written: the slot calculator, then an
exact re-query of the slot key right before the insert. Neither is a lock.
The partial unique index ``uq_appointments_active_slot`` is what actually
keeps two active appointments off the same slot; a violation of it on
insert is reported as the same conflict the checks produce.
"""

import logging
import secrets
import string
from datetime import date, time

from sqlalchemy.exc import IntegrityError

from clinic_backend.core.errors import NotFound, SlotConflict
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.notifications.webhooks import WebhookDispatcher, WebhookEvent
from clinic_backend.scheduling.slots import SlotCalculator, format_slot
from clinic_backend.scheduling.validation import (
    PatientInfo,
    parse_appointment_date,
    parse_slot_time,
    validate_grid_time,
)
from clinic_backend.stores.appointment_store import AppointmentStore
from clinic_backend.stores.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
TOKEN_LENGTH = 12
MAX_TOKEN_ATTEMPTS = 5

SLOT_UNAVAILABLE_MESSAGE = 'This time slot is not available.'
SLOT_JUST_TAKEN_MESSAGE = 'This time slot was just booked by someone else. Please choose another time.'


def generate_unique_token(length: int = TOKEN_LENGTH) -> str:
    return ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


class BookingEngine:
    def __init__(
        self,
        appointments: AppointmentStore,
        catalog: CatalogStore,
        slots: SlotCalculator,
        webhooks: WebhookDispatcher | None = None,
    ):
        self.appointments = appointments
        self.catalog = catalog
        self.slots = slots
        self.webhooks = webhooks

    def _new_token(self) -> str:
        for _ in range(MAX_TOKEN_ATTEMPTS):
            token = generate_unique_token()
            if not self.appointments.token_exists(token):
                return token
        raise RuntimeError('Could not generate a unique appointment token.')

    def ensure_slot_available(
        self,
        specialist_id: int,
        slot_date: date,
        slot_time: time,
    ) -> None:
        if format_slot(slot_time) not in self.slots.compute_available_slots(specialist_id, slot_date):
            raise SlotConflict(SLOT_UNAVAILABLE_MESSAGE)

    def book(
        self,
        specialty_id: int,
        specialist_id: int,
        appointment_date: str | date,
        appointment_time: str | time,
        patient: PatientInfo,
    ) -> Appointment:
        specialty = self.catalog.get_specialty(specialty_id)
        if specialty is None:
            raise NotFound('Specialty not found.')

        specialist = self.catalog.get_specialist(specialist_id, specialty_id=specialty_id)
        if specialist is None:
            raise NotFound('Specialist not found or does not belong to this specialty.')

        slot_date = parse_appointment_date(appointment_date)
        slot_time = validate_grid_time(parse_slot_time(appointment_time))

        self.ensure_slot_available(specialist_id, slot_date, slot_time)

        if self.appointments.find_active_at(specialist_id, slot_date, slot_time) is not None:
            raise SlotConflict(SLOT_JUST_TAKEN_MESSAGE)

        appointment = Appointment(
            specialty_id=specialty_id,
            specialist_id=specialist_id,
            appointment_date=slot_date,
            appointment_time=slot_time,
            status=AppointmentStatus.PENDING.value,
            price=specialty.base_price,
            patient_name=patient.name,
            patient_email=patient.email,
            patient_phone=patient.phone,
            notes=patient.notes,
            unique_token=self._new_token(),
        )

        try:
            self.appointments.add(appointment)
        except IntegrityError as exc:
            logger.info(
                'Slot %s %s for specialist %s taken at commit time',
                slot_date, format_slot(slot_time), specialist_id,
            )
            raise SlotConflict(SLOT_UNAVAILABLE_MESSAGE) from exc

        logger.info('Booked appointment %s for specialist %s on %s at %s',
                    appointment.id, specialist_id, slot_date, appointment.slot_time)

        if self.webhooks is not None:
            self.webhooks.notify(WebhookEvent.CREATED, appointment)

        return appointment
