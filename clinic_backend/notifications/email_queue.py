import enum
import json
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.email_log import EmailLog, EmailStatus
from clinic_backend.models.specialist import Specialist
from clinic_backend.models.specialty import Specialty

logger = logging.getLogger(__name__)


class EmailKind(str, enum.Enum):
    CONFIRMATION = "confirmation"
    EDITED = "edited"


EMAIL_TEMPLATES = {
    EmailKind.CONFIRMATION: ('appointment-confirmed', 'Your appointment has been confirmed'),
    EmailKind.EDITED: ('appointment-edited', 'Your appointment has been updated'),
}


def appointment_link(token: str) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}/appointment/{token}"


class EmailQueue:
    """Queues patient emails as pending ``email_logs`` rows.

    A separate worker delivers them. Queueing failures are logged and never
    reach the transition that triggered them.
    """

    def __init__(self, db: Session):
        self.db = db

    def build_template_data(self, appointment: Appointment) -> dict:
        specialty = self.db.get(Specialty, appointment.specialty_id)
        specialist = self.db.get(Specialist, appointment.specialist_id)
        return {
            'patientName': appointment.patient_name,
            'specialtyName': specialty.name if specialty else '',
            'specialistName': specialist.full_name if specialist else '',
            'appointmentDate': appointment.appointment_date.strftime('%d/%m/%Y'),
            'appointmentTime': appointment.slot_time,
            'price': str(appointment.price),
            'appointmentLink': appointment_link(appointment.unique_token),
            'sender': config.EMAIL_FROM,
        }

    def enqueue(self, kind: EmailKind, appointment: Appointment) -> EmailLog | None:
        template_name, subject = EMAIL_TEMPLATES[kind]
        try:
            email_log = EmailLog(
                appointment_id=appointment.id,
                recipient_email=appointment.patient_email,
                subject=subject,
                template_name=template_name,
                template_data=json.dumps(self.build_template_data(appointment)),
                status=EmailStatus.PENDING.value,
            )
            self.db.add(email_log)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Could not queue %s email for appointment %s', kind.value, appointment.id)
            return None

        logger.info('Queued %s email for appointment %s', kind.value, appointment.id)
        return email_log
