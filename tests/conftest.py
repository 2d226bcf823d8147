import os
import sys
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from extensions import db
from models import Student
from utils.security import hash_password, issue_token
from utils.sms import SendResult

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Admin@123"
JWT_SECRET = "test-secret"


class RecordingSender:
    """Stand-in for the SMS gateway that remembers every send."""

    def __init__(self, fail_on=(), raise_on=()):
        self.calls: list[tuple[str, str, dict]] = []
        self.fail_on = set(fail_on)
        self.raise_on = set(raise_on)

    def send(self, phone_number, message, metadata=None):
        self.calls.append((phone_number, message, dict(metadata or {})))
        if phone_number in self.raise_on:
            raise RuntimeError("connection reset")
        if phone_number in self.fail_on:
            return SendResult(False, error="gateway rejected number")
        return SendResult(True, provider_message_id=f"req-{len(self.calls)}", response={"return": True})

    @property
    def phones(self):
        return [c[0] for c in self.calls]


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "RATELIMIT_ENABLED": False,
        "SCHEDULER_ENABLED": False,
        "TRUST_PROXY": False,
        "JWT_SECRET": JWT_SECRET,
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "ADMIN_PASSWORD_HASH": hash_password(ADMIN_PASSWORD),
        "REMINDER_SEND_INTERVAL_SECONDS": 0,
        "SMS_BRAND": "AIICT",
    })
    app.extensions["sms_sender"] = RecordingSender()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sender(app):
    return app.extensions["sms_sender"]


@pytest.fixture
def auth_headers(app):
    token = issue_token(ADMIN_EMAIL, JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_student(app):
    def _make(name="Asha", phone="9876543210", course="Tally", amount="1500", status="pending",
              due=None, **extra):
        with app.app_context():
            student = Student(
                name=name,
                phone_no=phone,
                course_name=course,
                monthly_amount=Decimal(amount),
                fee_status=status,
                due_date=due or date(2024, 1, 2),
                **extra,
            )
            db.session.add(student)
            db.session.commit()
            return student.id

    return _make
