"""Shared fixtures: SQLite database, in-memory redis, seeded reference data."""

import os
import tempfile
import uuid
from datetime import date, time
from decimal import Decimal
from types import SimpleNamespace
from typing import Dict, Optional

TEST_SECRET = "test_gateway_secret"

_DB_DIR = tempfile.mkdtemp(prefix="mediq-tests-")
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{os.path.join(_DB_DIR, 'mediq.db')}"
os.environ["DATABASE_AUTO_CREATE"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = TEST_SECRET
os.environ["RAZORPAY_USE_STUB"] = "true"
os.environ["TOKEN_ALLOCATION_MAX_RETRIES"] = "50"
os.environ["TOKEN_ALLOCATION_BACKOFF_SECONDS"] = "0.001"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest  # noqa: E402

from mediq.models import Base, Doctor, Hospital, Patient, TimeSlot  # noqa: E402
from mediq.models.enums import AppointmentType, Role  # noqa: E402
from mediq.schemas import BookingIntent, Caller, ConfirmationRequest  # noqa: E402
from mediq.services import cache as cache_mod  # noqa: E402
from mediq.services.booking import BookingOrchestrator  # noqa: E402
from mediq.services.db import engine  # noqa: E402
from mediq.services.db import get_session  # noqa: E402
from mediq.services.lifecycle import AppointmentLifecycle  # noqa: E402
from mediq.services.payments import PaymentVerifier, expected_signature  # noqa: E402
from mediq.services.queue import QueueProjector  # noqa: E402
from mediq.services.tokens import TokenAllocator  # noqa: E402
from payment_gateway.razorpay_adapter import RazorpayAdapter  # noqa: E402

BOOKING_DATE = date(2024, 6, 1)


class FakeRedis:
    """Dict-backed stand-in for the handful of redis calls the cache makes."""

    def __init__(self) -> None:
        self.store: Dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        return self.store.get(name)

    def set(self, name: str, value: str, ex: Optional[int] = None) -> bool:
        self.store[name] = value
        return True

    def delete(self, *names: str) -> int:
        return sum(1 for name in names if self.store.pop(name, None) is not None)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache_mod, "redis_client", fake)
    return fake


@pytest.fixture(autouse=True)
def database():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def world():
    """One hospital, one doctor open every day 09:00-17:00, three patients."""

    doctor_user_id = uuid.uuid4()
    with get_session() as session:
        hospital = Hospital(name="City General", address="1 Main Road")
        session.add(hospital)
        session.flush()

        doctor = Doctor(
            hospital_id=hospital.id,
            user_id=doctor_user_id,
            name="Dr. Rao",
            specialization="Cardiology",
            consultation_fee=Decimal("500.00"),
        )
        session.add(doctor)
        session.flush()

        for day in range(7):
            session.add(
                TimeSlot(
                    doctor_id=doctor.id,
                    day_of_week=day,
                    start_time=time(9, 0),
                    end_time=time(17, 0),
                    slot_duration=15,
                    max_appointments=10,
                )
            )

        patients = [
            Patient(full_name=name, email=f"{name.split()[0].lower()}@example.com")
            for name in ("Asha Patel", "Ben Thomas", "Chitra Nair")
        ]
        session.add_all(patients)
        session.flush()

        ids = SimpleNamespace(
            hospital_id=hospital.id,
            doctor_id=doctor.id,
            doctor_user_id=doctor_user_id,
            patient_ids=[patient.id for patient in patients],
        )
    return ids


@pytest.fixture
def projector():
    return QueueProjector(cache_ttl_seconds=5)


@pytest.fixture
def orchestrator(projector):
    return BookingOrchestrator(
        verifier=PaymentVerifier(TEST_SECRET),
        allocator=TokenAllocator(max_retries=50, backoff_seconds=0.001),
        gateway=RazorpayAdapter(key_id="rzp_test_key", key_secret=TEST_SECRET, use_stub=True),
        projector=projector,
    )


@pytest.fixture
def lifecycle(projector):
    return AppointmentLifecycle(projector=projector)


def patient_caller(patient_id: uuid.UUID) -> Caller:
    return Caller(user_id=patient_id, role=Role.PATIENT)


@pytest.fixture
def doctor_caller(world):
    return Caller(user_id=world.doctor_user_id, role=Role.DOCTOR)


@pytest.fixture
def admin_caller():
    return Caller(user_id=uuid.uuid4(), role=Role.ADMIN)


@pytest.fixture
def make_intent(world):
    def _make(**overrides) -> BookingIntent:
        values = {
            "doctor_id": world.doctor_id,
            "hospital_id": world.hospital_id,
            "appointment_date": BOOKING_DATE,
            "appointment_time": time(10, 0),
            "appointment_type": AppointmentType.CONSULTATION,
            "consultation_fee": Decimal("500"),
        }
        values.update(overrides)
        return BookingIntent(**values)

    return _make


@pytest.fixture
def confirmation_for():
    """Build the confirmation a genuine checkout would hand back for an order."""

    def _build(order_id: str, intent: BookingIntent, payment_id: Optional[str] = None):
        payment_id = payment_id or f"pay_{uuid.uuid4().hex[:14]}"
        return ConfirmationRequest(
            razorpay_order_id=order_id,
            razorpay_payment_id=payment_id,
            razorpay_signature=expected_signature(order_id, payment_id, TEST_SECRET),
            appointment=intent,
        )

    return _build


@pytest.fixture
def book(orchestrator, make_intent, confirmation_for, world):
    """Run order creation and confirmation for one patient."""

    def _book(patient_index: int = 0, **overrides):
        caller = patient_caller(world.patient_ids[patient_index])
        intent = make_intent(**overrides)
        order = orchestrator.create_order(intent, caller)
        return orchestrator.confirm(confirmation_for(order.order_id, intent), caller)

    return _book


@pytest.fixture
def patients(world):
    """Caller identities for the seeded patients, in seeding order."""

    return [patient_caller(patient_id) for patient_id in world.patient_ids]
