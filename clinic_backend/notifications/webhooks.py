import enum
import logging
from datetime import datetime, timezone

import httpx

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment

logger = logging.getLogger(__name__)


class WebhookEvent(str, enum.Enum):
    CREATED = "appointment.created"
    CONFIRMED = "appointment.confirmed"
    CANCELLED = "appointment.cancelled"
    COMPLETED = "appointment.completed"


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def build_summary(event: WebhookEvent, appointment: Appointment) -> dict:
    summary = {
        "appointmentId": appointment.id,
        "patientEmail": appointment.patient_email,
    }
    if event is WebhookEvent.CANCELLED:
        summary["reason"] = "patient_cancelled"
        return summary

    summary.update(
        patientName=appointment.patient_name,
        appointmentDate=_iso(appointment.appointment_date),
        appointmentTime=appointment.slot_time,
    )
    if event is WebhookEvent.CREATED:
        summary.update(
            specialtyId=appointment.specialty_id,
            specialistId=appointment.specialist_id,
            status=appointment.status,
        )
    elif event is WebhookEvent.CONFIRMED:
        summary["confirmedAt"] = _iso(appointment.confirmed_at)
    return summary


class WebhookDispatcher:
    """Posts appointment events to an automation endpoint, best effort."""

    def __init__(self, url: str | None = None, timeout: float | None = None, client: httpx.Client | None = None):
        self.url = config.WEBHOOK_URL if url is None else url
        self.timeout = config.WEBHOOK_TIMEOUT_SECONDS if timeout is None else timeout
        self.client = client

    def notify(self, event: WebhookEvent, appointment: Appointment) -> bool:
        """Send ``event``; returns whether the endpoint accepted it. Never raises."""
        if not self.url:
            logger.warning('WEBHOOK_URL not configured. Webhook %s not sent.', event.value)
            return False

        try:
            payload = {
                "event": event.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "data": build_summary(event, appointment),
            }
            if self.client is not None:
                response = self.client.post(self.url, json=payload, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except Exception:
            logger.exception('Error sending webhook %s for appointment %s', event.value, appointment.id)
            return False

        logger.info('Webhook %s sent. Status: %s', event.value, response.status_code)
        return True
