"""Input checks run before the scheduling engine is invoked.

Dates arrive as ``YYYY-MM-DD`` strings and are read as plain calendar dates:
no timezone is ever applied, so ``2025-12-31`` is December 31 on any server.
Times arrive as ``HH:MM`` on the hourly grid.
"""

import re
from datetime import date, datetime, time
from typing import NamedTuple

from clinic_backend.core.errors import ValidationFailure

FIRST_SLOT_HOUR = 8
LAST_SLOT_HOUR = 21
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 100
MAX_PHONE_LENGTH = 20

_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')
_EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class PatientInfo(NamedTuple):
    name: str
    email: str
    phone: str
    notes: str | None = None


def parse_appointment_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    date_part = value.strip().split('T', 1)[0]
    match = _DATE_PATTERN.match(date_part)
    if not match:
        raise ValidationFailure('Date must use the YYYY-MM-DD format.')

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise ValidationFailure(f'Invalid calendar date: {date_part}.') from exc


def parse_slot_time(value: str | time) -> time:
    """Parse an ``HH:MM`` string; seconds, if present, are dropped."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise ValidationFailure('Time must use the HH:MM format.')

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationFailure(f'Invalid time of day: {value}.')
    return time(hour, minute)


def validate_grid_time(slot_time: time) -> time:
    if slot_time.hour < FIRST_SLOT_HOUR or slot_time.hour > LAST_SLOT_HOUR:
        raise ValidationFailure('Time is outside the allowed range (08:00 to 21:00).')
    if slot_time.minute != 0:
        raise ValidationFailure('Appointments must start on the hour.')
    return slot_time


def _required(value: str | None, label: str, max_length: int) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValidationFailure(f'{label} is required.')
    if len(normalized) > max_length:
        raise ValidationFailure(f'{label} must be {max_length} characters or fewer.')
    return normalized


def validate_patient_name(value: str | None) -> str:
    return _required(value, 'Patient name', MAX_NAME_LENGTH)


def validate_patient_email(value: str | None) -> str:
    normalized = _required(value, 'Patient email', MAX_EMAIL_LENGTH).lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValidationFailure('Patient email is not a valid address.')
    return normalized


def validate_patient_phone(value: str | None) -> str:
    return _required(value, 'Patient phone', MAX_PHONE_LENGTH)


def normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def validate_patient(name: str | None, email: str | None, phone: str | None, notes: str | None = None) -> PatientInfo:
    return PatientInfo(
        name=validate_patient_name(name),
        email=validate_patient_email(email),
        phone=validate_patient_phone(phone),
        notes=normalize_notes(notes),
    )
