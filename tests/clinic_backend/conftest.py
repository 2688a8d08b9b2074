import os
from datetime import date, time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models import admin, email_log  # noqa: E402,F401
from clinic_backend.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from clinic_backend.models.availability import Availability  # noqa: E402
from clinic_backend.models.specialist import Specialist  # noqa: E402
from clinic_backend.models.specialty import Specialty  # noqa: E402
from clinic_backend.scheduling.booking import BookingEngine, generate_unique_token  # noqa: E402
from clinic_backend.scheduling.lifecycle import LifecycleManager  # noqa: E402
from clinic_backend.scheduling.slots import SlotCalculator  # noqa: E402
from clinic_backend.scheduling.validation import PatientInfo  # noqa: E402
from clinic_backend.stores.appointment_store import AppointmentStore  # noqa: E402
from clinic_backend.stores.availability_store import AvailabilityStore  # noqa: E402
from clinic_backend.stores.catalog_store import CatalogStore  # noqa: E402

MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


class RecordingWebhooks:
    def __init__(self):
        self.events = []

    def notify(self, event, appointment):
        self.events.append((event, appointment.id))
        return True


class RecordingEmails:
    def __init__(self):
        self.queued = []

    def enqueue(self, kind, appointment):
        self.queued.append((kind, appointment.id))


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(db_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


def seed_catalog(db):
    physio = Specialty(name='Physiotherapy', base_price=Decimal('50.00'))
    massage = Specialty(name='Massage', base_price=Decimal('70.00'))
    db.add_all([physio, massage])
    db.flush()

    ana = Specialist(first_name='Ana', last_name='Rojas', email='ana@clinic.test', specialty_id=physio.id)
    luis = Specialist(first_name='Luis', last_name='Vega', email='luis@clinic.test', specialty_id=massage.id)
    db.add_all([ana, luis])
    db.flush()

    # Monday window deliberately narrower than the slot grid.
    db.add_all([
        Availability(specialist_id=ana.id, day_of_week=1, start_time=time(9, 0), end_time=time(13, 0), is_active=True),
        Availability(specialist_id=ana.id, day_of_week=2, start_time=time(9, 0), end_time=time(17, 0), is_active=False),
        Availability(specialist_id=luis.id, day_of_week=1, start_time=time(8, 0), end_time=time(22, 0), is_active=True),
    ])
    db.commit()
    return SimpleNamespace(physio=physio, massage=massage, ana=ana, luis=luis)


@pytest.fixture
def catalog(db):
    return seed_catalog(db)


@pytest.fixture
def add_appointment(db, catalog):
    def _add(slot_time: time, status: str = AppointmentStatus.PENDING.value, slot_date: date = MONDAY, specialist=None):
        specialist = specialist or catalog.ana
        appointment = Appointment(
            specialty_id=specialist.specialty_id,
            specialist_id=specialist.id,
            appointment_date=slot_date,
            appointment_time=slot_time,
            status=status,
            price=Decimal('50.00'),
            patient_name='Existing Patient',
            patient_email='existing@example.com',
            patient_phone='600000000',
            unique_token=generate_unique_token(),
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _add


@pytest.fixture
def patient():
    return PatientInfo(name='Juan Perez', email='juan@example.com', phone='+34 600 123 456', notes='Left knee pain')


@pytest.fixture
def webhooks():
    return RecordingWebhooks()


@pytest.fixture
def emails():
    return RecordingEmails()


@pytest.fixture
def slot_calculator(db):
    return SlotCalculator(AvailabilityStore(db), AppointmentStore(db))


@pytest.fixture
def booking_engine(db, slot_calculator, webhooks):
    return BookingEngine(AppointmentStore(db), CatalogStore(db), slot_calculator, webhooks=webhooks)


@pytest.fixture
def lifecycle(db, slot_calculator, emails, webhooks):
    return LifecycleManager(AppointmentStore(db), CatalogStore(db), slot_calculator, emails=emails, webhooks=webhooks)


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory over a file database so each session gets its own connection."""
    engine = create_engine(f'sqlite:///{tmp_path / "booking.db"}', connect_args={'check_same_thread': False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    seed_session = factory()
    seeded = seed_catalog(seed_session)
    ids = SimpleNamespace(
        physio_id=seeded.physio.id,
        ana_id=seeded.ana.id,
    )
    seed_session.close()

    try:
        yield factory, ids
    finally:
        engine.dispose()
