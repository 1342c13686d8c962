from datetime import timedelta

import pytest

from votecore.services.outcomes import ErrorKind
from votecore.services.verification import (
    TRANSITIONS, VerificationEvent, VerificationStep,
    go_back, next_step, resend_code, start_session, submit_code,
    submit_phone, submit_student_id, verified_student_id,
)

from conftest import STUDENT_ID, STUDENT_PHONE, T0, latest_code


@pytest.fixture
def session(db, election):
    return start_session(db)


@pytest.fixture
def at_otp_step(db, session, sender):
    submit_student_id(db, session, STUDENT_ID)
    result = submit_phone(db, session, STUDENT_PHONE, now=T0, sender=sender)
    assert result.success
    return session


def test_every_event_has_a_transition_table():
    assert set(TRANSITIONS) == set(VerificationEvent)
    assert next_step(VerificationEvent.SUBMIT_CODE, VerificationStep.ID_VERIFICATION) is None
    assert next_step(VerificationEvent.GO_BACK, VerificationStep.SUCCESS) is None


def test_new_session_starts_at_id_step(session):
    assert session.step == "id-verification"
    assert verified_student_id(session) is None


def test_student_id_step_returns_masked_phone(db, session):
    result = submit_student_id(db, session, " 01200644D ")

    assert result.success
    assert result.step == VerificationStep.PHONE_VERIFICATION
    assert result.masked_phone == "024******7"
    assert session.student_id == "01200644d"


def test_masked_phone_ignores_separators_on_record(db, session):
    result = submit_student_id(db, session, "01200645d")
    assert result.masked_phone == "020******3"


@pytest.mark.parametrize("student_id, kind", [
    ("99999999X", ErrorKind.NOT_FOUND),
    ("01200700d", ErrorKind.CONFLICT),
    ("01200800d", ErrorKind.VALIDATION),
    ("", ErrorKind.VALIDATION),
])
def test_student_id_step_refusals_stay_put(db, session, student_id, kind):
    result = submit_student_id(db, session, student_id)

    assert result.kind == kind
    assert result.step == VerificationStep.ID_VERIFICATION
    assert session.student_id is None


def test_phone_mismatch_stays_on_phone_step(db, session, sender):
    submit_student_id(db, session, STUDENT_ID)

    result = submit_phone(db, session, "0200000000", now=T0, sender=sender)

    assert result.kind == ErrorKind.VALIDATION
    assert result.step == VerificationStep.PHONE_VERIFICATION
    assert sender.calls == []


def test_phone_match_tolerates_separators_and_sends_code(db, session, sender):
    submit_student_id(db, session, STUDENT_ID)

    result = submit_phone(db, session, "(024) 123-4567", now=T0, sender=sender)

    assert result.success
    assert result.step == VerificationStep.SMS_OTP
    assert result.cooldown_seconds == 120
    assert len(sender.calls) == 1


def test_correct_code_completes_verification(db, at_otp_step):
    code = latest_code(db, STUDENT_ID)

    result = submit_code(db, at_otp_step, code, now=T0 + timedelta(seconds=20))

    assert result.success
    assert result.step == VerificationStep.SUCCESS
    assert verified_student_id(at_otp_step, now=T0 + timedelta(seconds=30)) == "01200644d"
    assert at_otp_step.verified_at == T0 + timedelta(seconds=20)


def test_verified_session_expires(db, at_otp_step):
    submit_code(db, at_otp_step, latest_code(db, STUDENT_ID), now=T0 + timedelta(seconds=20))

    assert verified_student_id(at_otp_step, now=T0 + timedelta(seconds=20 + 3600)) == "01200644d"
    assert verified_student_id(at_otp_step, now=T0 + timedelta(seconds=20 + 3601)) is None


def test_wrong_code_stays_on_otp_step(db, at_otp_step):
    result = submit_code(db, at_otp_step, "000000", now=T0 + timedelta(seconds=20))

    assert result.message == "Invalid or expired verification code. Please try again."
    assert result.step == VerificationStep.SMS_OTP
    assert verified_student_id(at_otp_step) is None


def test_resend_inside_cooldown_reports_wait(db, at_otp_step, sender):
    result = resend_code(db, at_otp_step, now=T0 + timedelta(seconds=45), sender=sender)

    assert result.kind == ErrorKind.RATE_LIMITED
    assert result.retry_after == 75
    assert result.step == VerificationStep.SMS_OTP


def test_resend_after_cooldown_issues_new_code(db, at_otp_step, sender):
    result = resend_code(db, at_otp_step, now=T0 + timedelta(seconds=121), sender=sender)

    assert result.success
    assert result.step == VerificationStep.SMS_OTP
    assert len(sender.calls) == 2
    code = latest_code(db, STUDENT_ID)
    assert submit_code(db, at_otp_step, code, now=T0 + timedelta(seconds=130)).success


def test_code_cannot_be_submitted_before_phone_step(db, session):
    submit_student_id(db, session, STUDENT_ID)

    result = submit_code(db, session, "123456")

    assert result.kind == ErrorKind.VALIDATION
    assert result.step == VerificationStep.PHONE_VERIFICATION


def test_resend_is_illegal_outside_otp_step(db, session, sender):
    result = resend_code(db, session, now=T0, sender=sender)
    assert not result.success
    assert sender.calls == []


def test_back_from_otp_returns_to_phone_keeping_student(db, at_otp_step):
    result = go_back(db, at_otp_step)

    assert result.step == VerificationStep.PHONE_VERIFICATION
    assert at_otp_step.student_id == "01200644d"
    assert result.masked_phone == "024******7"


def test_back_from_phone_forgets_student(db, session):
    submit_student_id(db, session, STUDENT_ID)

    result = go_back(db, session)

    assert result.step == VerificationStep.ID_VERIFICATION
    assert session.student_id is None
    assert session.masked_phone is None


def test_back_is_refused_at_the_ends(db, session, at_otp_step):
    assert not go_back(db, start_session(db)).success

    submit_code(db, at_otp_step, latest_code(db, STUDENT_ID), now=T0 + timedelta(seconds=5))
    result = go_back(db, at_otp_step)
    assert not result.success
    assert result.step == VerificationStep.SUCCESS
