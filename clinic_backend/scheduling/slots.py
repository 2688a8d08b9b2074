from datetime import date, time

from clinic_backend.scheduling.validation import FIRST_SLOT_HOUR, LAST_SLOT_HOUR
from clinic_backend.stores.appointment_store import AppointmentStore
from clinic_backend.stores.availability_store import AvailabilityStore

SLOT_GRID = tuple(time(hour, 0) for hour in range(FIRST_SLOT_HOUR, LAST_SLOT_HOUR + 1))


def format_slot(slot_time: time) -> str:
    return slot_time.strftime('%H:%M')


def clinic_day_of_week(slot_date: date) -> int:
    """Weekday with Sunday as 0, the convention availability rows use."""
    return (slot_date.weekday() + 1) % 7


class SlotCalculator:
    """Derives the free hourly slots of a specialist on a date.

    Only the ``is_active`` flag of the day's availability matters; its
    start and end times do not clip the grid.
    """

    def __init__(self, availability: AvailabilityStore, appointments: AppointmentStore):
        self.availability = availability
        self.appointments = appointments

    def compute_available_slots(self, specialist_id: int, slot_date: date) -> list[str]:
        window = self.availability.get_active_availability(specialist_id, clinic_day_of_week(slot_date))
        if window is None:
            return []

        occupied = {
            format_slot(appointment.appointment_time)
            for appointment in self.appointments.find_active_on_date(specialist_id, slot_date)
        }

        return [format_slot(slot) for slot in SLOT_GRID if format_slot(slot) not in occupied]
