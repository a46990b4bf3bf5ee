import os
from datetime import datetime, timedelta

import httpx
import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from clinic.main import app
from clinic.api.deps import get_dispatcher
from clinic.core.database import Base, get_db, get_redis
from clinic.core.dates import clinic_today
from clinic.core.security import UserRole, create_access_token, get_password_hash
from clinic.models import (
    Appointment, AppointmentStatus, DoctorProfile, DoctorSchedule,
    MedicalHistory, PatientProfile, PaymentStatus, User,
)
from clinic.services import appointment_service, payment_service, reminder_service, schedule_service
from clinic.services.notifications import NotificationDispatcher
from clinic.services.realtime import RealtimeClient

# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db

PASSWORD = "Secret123"


class RecordingMailer:
    """Stands in for SMTP delivery."""

    def __init__(self):
        self.sent = []
        self.calls = 0
        self.fail = False

    def __call__(self, to_email, subject, html):
        self.calls += 1
        if self.fail:
            raise ConnectionRefusedError("SMTP server unavailable")
        self.sent.append({"to": to_email, "subject": subject, "html": html})
        return True

    def subjects_to(self, email):
        return [message["subject"] for message in self.sent if message["to"] == email]


class RecordingRealtime(RealtimeClient):
    """Real-time client that records events instead of posting them."""

    def __init__(self):
        super().__init__(url="http://realtime.test/events", timeout=1)
        self.events = []
        self.fail = False

    async def trigger(self, channel, event, data):
        if self.fail:
            raise httpx.ConnectError("Real-time gateway unavailable")
        self.events.append({"channel": channel, "event": event, "data": data})
        return True

    def named(self, event):
        return [item["data"] for item in self.events if item["event"] == event]


class SideEffects:
    def __init__(self):
        self.mailer = RecordingMailer()
        self.realtime = RecordingRealtime()


@pytest.fixture(autouse=True)
def side_effects():
    effects = SideEffects()

    def recording_dispatcher(background_tasks: BackgroundTasks) -> NotificationDispatcher:
        return NotificationDispatcher(background_tasks, mailer=effects.mailer, realtime=effects.realtime)

    app.dependency_overrides[get_dispatcher] = recording_dispatcher
    yield effects
    app.dependency_overrides.pop(get_dispatcher, None)


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    get_redis().flushall()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def freeze_now(monkeypatch):
    """Pin the clinic clock used by the services."""
    def _freeze(moment: datetime):
        for module in (schedule_service, appointment_service, payment_service, reminder_service):
            monkeypatch.setattr(module, "clinic_now", lambda: moment)
        return moment
    return _freeze


@pytest.fixture
def tomorrow():
    return clinic_today() + timedelta(days=1)


def auth_headers(user):
    token = create_access_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


def make_user(db, role=UserRole.PATIENT, email=None, name=None, phone="9000000000"):
    user = User(
        email=email or f"{role.value.lower()}@example.com",
        name=name or f"Test {role.value.title()}",
        phone=phone,
        password_hash=get_password_hash(PASSWORD),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_patient(db, email="patient@example.com", name="Asha Patient", history=True):
    user = make_user(db, UserRole.PATIENT, email=email, name=name)
    profile = PatientProfile(user_id=user.id, has_completed_medical_history=history)
    db.add(profile)
    db.commit()
    if history:
        db.add(MedicalHistory(patient_id=profile.id, conditions=["None"], allergies=[],
                              current_medications=[], surgeries=[]))
        db.commit()
    db.refresh(user)
    return user


def make_schedule(db, doctor, day, start="09:00", end="10:00", duration=30, capacity=1,
                  break_start=None, break_end=None):
    schedule = DoctorSchedule(
        doctor_id=doctor.id if doctor else None,
        schedule_date=day,
        start_time=start,
        end_time=end,
        break_start_time=break_start,
        break_end_time=break_end,
        slot_duration=duration,
        max_patients_per_slot=capacity,
        is_active=True,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


def make_appointment(db, patient, day, time="09:00", status=AppointmentStatus.SCHEDULED,
                     doctor=None, seat=1, symptoms="Fever and headache"):
    profile = db.query(PatientProfile).filter(PatientProfile.user_id == patient.id).first()
    appointment = Appointment(
        patient_id=profile.id,
        doctor_id=doctor.id if doctor else None,
        appointment_date=datetime.combine(day, datetime.min.time()),
        slot_date=day,
        appointment_time=time,
        slot_seat=seat,
        status=status,
        payment_status=PaymentStatus.PENDING,
        symptoms=symptoms,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


@pytest.fixture
def doctor(db):
    user = make_user(db, UserRole.DOCTOR, email="doctor@example.com", name="Dr. Rao")
    db.add(DoctorProfile(user_id=user.id, upi_id="rao@upi", clinic_address="12 MG Road"))
    db.commit()
    return user


@pytest.fixture
def admin(db):
    return make_user(db, UserRole.ADMIN, email="admin@example.com", name="Clinic Admin")


@pytest.fixture
def patient(db):
    return make_patient(db)


@pytest.fixture
def other_patient(db):
    return make_patient(db, email="other@example.com", name="Ben Other")
