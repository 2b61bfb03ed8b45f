import asyncio
import base64
import os
import tempfile
import time
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so the environment is prepared before medbook loads
_TMP_DIR = tempfile.mkdtemp(prefix="medbook-tests-")
WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"medbook-test-webhook-signing-key").decode()
ADMIN_KEY = "test-admin-key"

os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/medbook-test.db"
os.environ["SECRET_KEY"] = "test-secret-key-for-medbook"
os.environ["DODO_PAYMENTS_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["ADMIN_API_KEY"] = ADMIN_KEY
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PRACTITIONER_TIMEZONE"] = "UTC"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["API_BASE_URL"] = "http://api.test"
os.environ.pop("REDIS_URL", None)
os.environ.pop("RESEND_API_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from medbook.database import Base, SessionLocal, engine  # noqa: E402
from medbook.domain.accounts.repository import AccountRepository  # noqa: E402
from medbook.domain.booking.locks import BookingLocks  # noqa: E402
from medbook.errors import UpstreamFailure  # noqa: E402
from medbook.main import app  # noqa: E402
from medbook.models import ROLE_PATIENT, ROLE_PRACTITIONER  # noqa: E402
from medbook.security_utils import create_access_token, hash_password  # noqa: E402
from medbook.services.meeting_provisioner import ProvisionedMeeting, get_meeting_provisioner  # noqa: E402
from medbook.services.notification_service import get_notifier  # noqa: E402
from medbook.services.payment_gateway import CheckoutSession, get_payment_gateway  # noqa: E402
from medbook.webhook_security import compute_signature  # noqa: E402

TEST_PASSWORD = "secret123"
OPEN_ALL_DAY = {"from": 0, "to": 24}


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================


class FakeMeetingProvisioner:
    def __init__(self):
        self.created: list[ProvisionedMeeting] = []
        self.deleted: list[str] = []
        self.fail_create = False
        self.fail_delete = False
        self.delay = 0.0

    async def create_meeting(self, start, end):
        await asyncio.sleep(self.delay)
        if self.fail_create:
            raise UpstreamFailure("Meeting provider unavailable")
        number = len(self.created) + 1
        meeting = ProvisionedMeeting(
            meeting_id=f"meeting-{number}", room_url=f"https://medbook.whereby.com/room-{number}"
        )
        self.created.append(meeting)
        return meeting

    async def delete_meeting(self, meeting_id):
        await asyncio.sleep(self.delay)
        if self.fail_delete:
            raise UpstreamFailure("Meeting provider could not delete the room")
        self.deleted.append(meeting_id)


class FakePaymentGateway:
    def __init__(self):
        self.sessions: list[dict] = []

    async def create_checkout_session(self, amount, customer_email, customer_name, metadata, return_url=None):
        number = len(self.sessions) + 1
        self.sessions.append(
            {"amount": amount, "customer_email": customer_email, "customer_name": customer_name, "metadata": metadata}
        )
        return CheckoutSession(
            session_id=f"cks_test_{number}", checkout_url=f"https://test.checkout.dodopayments.com/cks_test_{number}"
        )


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple[str, dict]] = []
        self.fail = False

    def _record(self, kind, **details):
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((kind, details))
        return {"email_sent": True, "email_error": None}

    def of_kind(self, kind):
        return [details for sent_kind, details in self.sent if sent_kind == kind]

    async def email_verification(self, account, verify_url):
        return self._record("verification", email=account.email, verify_url=verify_url)

    async def password_reset(self, account, reset_link):
        return self._record("password_reset", email=account.email, reset_link=reset_link)

    async def booking_confirmed(self, appointment, practitioner, patient):
        return self._record(
            "booking_confirmed",
            appointment_id=appointment.appointment_id,
            practitioner_email=practitioner.email,
            patient_email=patient.email,
        )

    async def appointment_cancelled(self, patient, practitioner_name, start, end, reason):
        return self._record("cancelled", email=patient.email, practitioner_name=practitioner_name, reason=reason)


class Fakes:
    def __init__(self):
        self.provisioner = FakeMeetingProvisioner()
        self.gateway = FakePaymentGateway()
        self.notifier = FakeNotifier()
        self.locks = BookingLocks()


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def fakes():
    return Fakes()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(fakes):
    app.dependency_overrides[get_meeting_provisioner] = lambda: fakes.provisioner
    app.dependency_overrides[get_payment_gateway] = lambda: fakes.gateway
    app.dependency_overrides[get_notifier] = lambda: fakes.notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============================================================================
# HELPERS
# ============================================================================


def make_patient(db, name="Pat Patient", email="p@x.com", **fields):
    return AccountRepository.create_account(
        db,
        role=ROLE_PATIENT,
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        is_verified=True,
        **fields,
    )


def make_practitioner(db, name="Dr. Dana", email="d@x.com", rates=None, **fields):
    fields.setdefault("workday_hours", dict(OPEN_ALL_DAY))
    fields.setdefault("weekend_hours", dict(OPEN_ALL_DAY))
    return AccountRepository.create_account(
        db,
        role=ROLE_PRACTITIONER,
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        is_verified=True,
        rates=rates or {"15": 10, "30": 20, "45": 30, "60": 40},
        **fields,
    )


def auth_header(account) -> dict:
    return {"Authorization": f"Bearer {create_access_token(account.account_id, account.role)}"}


def future_slot(minutes=30, days_ahead=2, hour=10, minute=0):
    """Naive-UTC window a few days ahead"""
    start = (datetime.now(timezone.utc) + timedelta(days=days_ahead)).replace(
        hour=hour, minute=minute, second=0, microsecond=0, tzinfo=None
    )
    return start, start + timedelta(minutes=minutes)


def signed_headers(body: bytes, event_id="evt_test_1", timestamp=None, secret=WEBHOOK_SECRET) -> dict:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signature = compute_signature(secret, event_id, ts, body)
    return {
        "webhook-id": event_id,
        "webhook-timestamp": ts,
        "webhook-signature": f"v1,{signature}",
        "content-type": "application/json",
    }


def paid_event(metadata: dict, payment_id="pay_test_1", event_type="payment.succeeded", status="succeeded") -> dict:
    return {
        "business_id": "bus_test",
        "type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": {
            "payload_type": "Payment",
            "payment_id": payment_id,
            "status": status,
            "total_amount": int(metadata.get("cost", 0)),
            "currency": "EUR",
            "metadata": metadata,
        },
    }


def booking_metadata(patient, practitioner, start, end, cost=20, notes="Headache for three days") -> dict:
    return {
        "patient_id": patient.account_id,
        "practitioner_id": practitioner.account_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "notes": notes,
        "cost": str(cost),
    }
