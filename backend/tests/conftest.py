"""
Shared fixtures: an in-memory SQLite database rebuilt for every test,
a seeded election, and a recording SMS sender.
"""

import os

# Must be set before votecore is imported: the engine is built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("MNOTIFY_API_KEY", None)

from datetime import datetime

import pytest

from votecore import config
from votecore.database import SessionLocal, create_tables, drop_tables
from votecore.models import Candidate, SmsOtp, Student, VotingCategory, VotingStatus
from votecore.services.outcomes import ErrorKind
from votecore.services.sms import DeliveryResult

T0 = datetime(2025, 10, 1, 9, 0, 0)

STUDENT_ID = "01200644D"
STUDENT_PHONE = "0241234567"


class RecordingSender:
    """Stands in for the SMS gateway and remembers every (phone, code)."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []

    def __call__(self, phone, code):
        self.calls.append((phone, code))
        if self.succeed:
            return DeliveryResult.ok("SMS sent successfully (simulated)", mode="simulated")
        return DeliveryResult.fail(ErrorKind.TRANSIENT, "Rejected by gateway", mode="live")


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    monkeypatch.setattr(config, "MNOTIFY_API_KEY", None)
    monkeypatch.setattr(config, "ADMIN_TOKEN", "test-admin-token")


@pytest.fixture
def db():
    create_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_tables()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def election(db):
    """Three categories with two candidates each and a handful of students."""
    categories = [
        VotingCategory(id=1, name="Presidential", display_order=1),
        VotingCategory(id=2, name="Vice President", display_order=2),
        VotingCategory(id=3, name="General Secretary", display_order=3),
    ]
    candidates = [
        Candidate(id=11, name="Kwame Asante", category_id=1),
        Candidate(id=12, name="Abena Owusu", category_id=1),
        Candidate(id=21, name="Yaw Boateng", category_id=2),
        Candidate(id=22, name="Efua Mensah", category_id=2),
        Candidate(id=31, name="Kofi Adjei", category_id=3),
        Candidate(id=32, name="Akosua Darko", category_id=3),
    ]
    students = [
        Student(student_id="01200644d", name="Ama Serwaa", phone=STUDENT_PHONE,
                programme="Computer Science", level="300", has_voted=False),
        Student(student_id="01200645d", name="Kojo Antwi", phone="020 987 6543",
                programme="Information Technology", level="200", has_voted=False),
        Student(student_id="01200700d", name="Esi Quaye", phone="0551112223",
                programme="Computer Science", level="100", has_voted=True),
        Student(student_id="01200800d", name="Nana Yeboah", phone=None,
                programme="Mathematics", level="400", has_voted=False),
    ]
    db.add_all(categories + candidates + students)
    db.add(VotingStatus(id=1, is_open=True, version=1))
    db.commit()
    return {"categories": categories, "candidates": candidates, "students": students}


def latest_code(db, student_id):
    """Most recently issued code for a student, read straight from the store."""
    record = db.query(SmsOtp).filter(
        SmsOtp.student_id == student_id.strip().lower()
    ).order_by(SmsOtp.created_at.desc()).first()
    return record.otp_code if record else None
