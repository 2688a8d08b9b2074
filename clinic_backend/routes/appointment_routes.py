import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import get_current_admin
from clinic_backend.core.errors import BookingError, NotFound
from clinic_backend.database import ensure_appointment_schema, get_db
from clinic_backend.models.admin import Admin
from clinic_backend.models.appointment import AppointmentStatus
from clinic_backend.notifications.email_queue import EmailQueue
from clinic_backend.notifications.webhooks import WebhookDispatcher
from clinic_backend.scheduling.booking import BookingEngine
from clinic_backend.scheduling.lifecycle import AppointmentChanges, LifecycleManager
from clinic_backend.scheduling.slots import SlotCalculator
from clinic_backend.scheduling.validation import parse_appointment_date, validate_patient
from clinic_backend.stores.appointment_store import AppointmentStore
from clinic_backend.stores.availability_store import AvailabilityStore
from clinic_backend.stores.catalog_store import CatalogStore

public_router = APIRouter(tags=['public'])
admin_router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class CreateAppointmentRequest(BaseModel):
    specialty_id: int
    specialist_id: int
    appointment_date: str
    appointment_time: str
    patient_name: str
    patient_email: str
    patient_phone: str
    notes: str | None = None

    @field_validator('patient_email')
    @classmethod
    def normalize_patient_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('patient_name', 'patient_phone', 'appointment_date', 'appointment_time')
    @classmethod
    def strip_value(cls, value: str) -> str:
        return value.strip()


class ConfirmAppointmentRequest(BaseModel):
    status: AppointmentStatus


class UpdateAppointmentRequest(BaseModel):
    specialty_id: int | None = None
    specialist_id: int | None = None
    appointment_date: str | None = None
    appointment_time: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None
    patient_phone: str | None = None
    notes: str | None = None


class AvailableSlotsResponse(BaseModel):
    slots: list[str]


class AppointmentResponse(BaseModel):
    id: int
    specialty_id: int
    specialist_id: int
    appointment_date: date
    appointment_time: str
    status: AppointmentStatus
    price: float
    patient_name: str
    patient_email: str
    patient_phone: str
    unique_token: str
    notes: str | None = None
    confirmed_at: datetime | None = None
    confirmed_by_id: int | None = None

    class Config:
        from_attributes = True

    @field_validator('appointment_time', mode='before')
    @classmethod
    def format_time(cls, value):
        if isinstance(value, time):
            return value.strftime('%H:%M')
        return value


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def to_http_error(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.error('Database error: %s', exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def get_booking_engine(db: Session = Depends(get_db)) -> BookingEngine:
    appointments = AppointmentStore(db)
    return BookingEngine(
        appointments,
        CatalogStore(db),
        SlotCalculator(AvailabilityStore(db), appointments),
        webhooks=WebhookDispatcher(),
    )


def get_lifecycle_manager(db: Session = Depends(get_db)) -> LifecycleManager:
    appointments = AppointmentStore(db)
    return LifecycleManager(
        appointments,
        CatalogStore(db),
        SlotCalculator(AvailabilityStore(db), appointments),
        emails=EmailQueue(db),
        webhooks=WebhookDispatcher(),
    )


# Public endpoints, addressed by the appointment's unique token.

@public_router.get('/available-slots', response_model=AvailableSlotsResponse)
def get_available_slots(
    specialist_id: int = Query(...),
    date_value: str = Query(..., alias='date', description='YYYY-MM-DD'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slot_date = parse_appointment_date(date_value)
        if CatalogStore(db).get_specialist(specialist_id) is None:
            raise NotFound('Specialist not found.')
        calculator = SlotCalculator(AvailabilityStore(db), AppointmentStore(db))
        return AvailableSlotsResponse(slots=calculator.compute_available_slots(specialist_id, slot_date))
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@public_router.post('/book', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(data: CreateAppointmentRequest, engine: BookingEngine = Depends(get_booking_engine)):
    ensure_database_ready()

    try:
        patient = validate_patient(data.patient_name, data.patient_email, data.patient_phone, data.notes)
        return engine.book(
            specialty_id=data.specialty_id,
            specialist_id=data.specialist_id,
            appointment_date=data.appointment_date,
            appointment_time=data.appointment_time,
            patient=patient,
        )
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@public_router.get('/token/{token}', response_model=AppointmentResponse)
def get_appointment_by_token(token: str, lifecycle: LifecycleManager = Depends(get_lifecycle_manager)):
    try:
        return lifecycle.get_by_token(token)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@public_router.patch('/token/{token}/cancel', response_model=AppointmentResponse)
def cancel_appointment_by_token(token: str, lifecycle: LifecycleManager = Depends(get_lifecycle_manager)):
    try:
        return lifecycle.cancel_by_token(token)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


# Admin endpoints.

@admin_router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    try:
        if status_filter is not None:
            return lifecycle.list_by_status(status_filter)
        return lifecycle.list_all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@admin_router.get('/calendar', response_model=list[AppointmentResponse])
def list_calendar_appointments(
    start_date: str = Query(...),
    end_date: str = Query(...),
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    try:
        return lifecycle.list_in_range(start_date, end_date)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@admin_router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    try:
        return lifecycle.get(appointment_id)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@admin_router.patch('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    data: ConfirmAppointmentRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    try:
        return lifecycle.confirm(appointment_id, data.status, acting_admin_id=admin.id)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@admin_router.patch('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    try:
        return lifecycle.complete(appointment_id)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@admin_router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    try:
        return lifecycle.cancel(appointment_id)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@admin_router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
    admin: Admin = Depends(get_current_admin),
):
    fields = data.model_dump(exclude_unset=True)
    changes = AppointmentChanges(**fields)

    try:
        return lifecycle.edit(appointment_id, changes)
    except BookingError as exc:
        raise to_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
