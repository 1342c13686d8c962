"""
Verification Service - the voter's identity/phone/OTP state machine.

Steps::

    id-verification ──student id──▶ phone-verification ──phone──▶ sms-otp ──code──▶ success
          ▲                               │   ▲                      │  ▲ resend
          └──────────────back─────────────┘   └─────────back─────────┘  └─┘

Every event has exactly one handler and a fixed set of source steps
(``TRANSITIONS``). An event fired from any other step is refused without
side effects, so e.g. a code can never be checked before the phone matched.

The session row is the only state carried between requests. The client
only ever sees the masked phone hint; the full number stays server-side.
The client-side resend countdown is advisory: the OTP service's cooldown
and hourly cap are the real guard.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from votecore import config
from votecore.database import utcnow
from votecore.models.voter_session import VoterSession
from votecore.services.identity import (
    find_student_by_id, mask_phone_number, normalize_phone, normalize_student_id
)
from votecore.services.otp import issue_otp, verify_otp, Sender
from votecore.services.outcomes import ActionResult, ErrorKind, GENERIC_ERROR_MESSAGE
from votecore.services.sms import send_otp_sms
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("verification")


class VerificationStep(str, Enum):
    ID_VERIFICATION = "id-verification"
    PHONE_VERIFICATION = "phone-verification"
    SMS_OTP = "sms-otp"
    SUCCESS = "success"


class VerificationEvent(str, Enum):
    SUBMIT_STUDENT_ID = "submit_student_id"
    SUBMIT_PHONE = "submit_phone"
    RESEND_CODE = "resend_code"
    SUBMIT_CODE = "submit_code"
    GO_BACK = "go_back"


# event -> {source step: target step}
TRANSITIONS = {
    VerificationEvent.SUBMIT_STUDENT_ID: {
        VerificationStep.ID_VERIFICATION: VerificationStep.PHONE_VERIFICATION,
    },
    VerificationEvent.SUBMIT_PHONE: {
        VerificationStep.PHONE_VERIFICATION: VerificationStep.SMS_OTP,
    },
    VerificationEvent.RESEND_CODE: {
        VerificationStep.SMS_OTP: VerificationStep.SMS_OTP,
    },
    VerificationEvent.SUBMIT_CODE: {
        VerificationStep.SMS_OTP: VerificationStep.SUCCESS,
    },
    VerificationEvent.GO_BACK: {
        VerificationStep.PHONE_VERIFICATION: VerificationStep.ID_VERIFICATION,
        VerificationStep.SMS_OTP: VerificationStep.PHONE_VERIFICATION,
    },
}


class StepResult(ActionResult):
    """Outcome of one verification event, always carrying the current step."""
    step: VerificationStep
    masked_phone: Optional[str] = None
    cooldown_seconds: Optional[int] = None
    retry_after: Optional[int] = None


def next_step(event: VerificationEvent, current: VerificationStep) -> Optional[VerificationStep]:
    """Target step for an event, or None when the event is illegal here."""
    return TRANSITIONS[event].get(current)


def current_step(session: VoterSession) -> VerificationStep:
    return VerificationStep(session.step)


def start_session(db: Session) -> VoterSession:
    """Open a fresh verification session at the ID step."""
    session = VoterSession(step=VerificationStep.ID_VERIFICATION.value)
    db.add(session)
    db.commit()
    db.refresh(session)
    log_with_context(logger, "INFO", "Verification session started",
                     context={"session_id": session.id})
    return session


def get_session(db: Session, session_id: str) -> Optional[VoterSession]:
    if not session_id:
        return None
    return db.get(VoterSession, session_id)


def verified_student_id(session: Optional[VoterSession],
                        now: Optional[datetime] = None) -> Optional[str]:
    """
    The hand-off to later stages: a student ID only once verified, and only
    for VOTER_SESSION_TTL_SECONDS after verification.
    """
    if session is None or session.step != VerificationStep.SUCCESS.value:
        return None
    if session.verified_at is None:
        return None
    now = now or utcnow()
    if now - session.verified_at > timedelta(seconds=config.VOTER_SESSION_TTL_SECONDS):
        return None
    return session.student_id


def _refuse(session: VoterSession, event: VerificationEvent) -> StepResult:
    log_with_context(logger, "WARNING", "Illegal verification event {}".format(event.value),
                     context={"session_id": session.id, "step": session.step})
    return StepResult.fail(ErrorKind.VALIDATION, "This action is not available at the current step.",
                           step=current_step(session), masked_phone=session.masked_phone)


def _advance(db: Session, session: VoterSession, target: VerificationStep) -> None:
    session.step = target.value
    session.updated_at = utcnow()
    db.commit()


def _stay(session: VoterSession, result: ActionResult, **fields) -> StepResult:
    return StepResult.fail(result.kind, result.message, step=current_step(session),
                           masked_phone=session.masked_phone, **fields)


def submit_student_id(db: Session, session: VoterSession, student_id: str) -> StepResult:
    """
    ID step: the student must exist, must not have voted, and must have a
    complete record. On success the masked phone hint is returned.
    """
    target = next_step(VerificationEvent.SUBMIT_STUDENT_ID, current_step(session))
    if target is None:
        return _refuse(session, VerificationEvent.SUBMIT_STUDENT_ID)

    clean_id = normalize_student_id(student_id)
    if not clean_id:
        return _stay(session, ActionResult.fail(ErrorKind.VALIDATION, "Please enter your student ID."))

    try:
        student = find_student_by_id(db, clean_id)
        if not student:
            return _stay(session, ActionResult.fail(
                ErrorKind.NOT_FOUND, "Student ID not found. Please check your ID and try again."))
        if student.has_voted:
            return _stay(session, ActionResult.fail(
                ErrorKind.CONFLICT, "You have already voted in this election."))
        if not student.is_complete:
            return _stay(session, ActionResult.fail(
                ErrorKind.VALIDATION, "Student record is incomplete. Please contact the administrator."))

        session.student_id = student.student_id
        session.masked_phone = mask_phone_number(normalize_phone(student.phone))
        _advance(db, session, target)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Student ID step failed: {}".format(str(e)),
                         context={"session_id": session.id})
        return _stay(session, ActionResult.fail(ErrorKind.TRANSIENT, GENERIC_ERROR_MESSAGE))

    log_with_context(logger, "INFO", "Student ID accepted",
                     context={"session_id": session.id, "student_id": clean_id})
    return StepResult.ok("Student verified. Please confirm your phone number.",
                         step=target, masked_phone=session.masked_phone)


def submit_phone(db: Session, session: VoterSession, phone: str,
                 now: Optional[datetime] = None, sender: Sender = send_otp_sms) -> StepResult:
    """
    Phone step: the full number must match the record after stripping
    separators; a match immediately issues an OTP.
    """
    target = next_step(VerificationEvent.SUBMIT_PHONE, current_step(session))
    if target is None:
        return _refuse(session, VerificationEvent.SUBMIT_PHONE)

    clean_input = normalize_phone(phone)
    if not clean_input:
        return _stay(session, ActionResult.fail(ErrorKind.VALIDATION, "Please enter your phone number."))

    try:
        student = find_student_by_id(db, session.student_id)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Phone step lookup failed: {}".format(str(e)),
                         context={"session_id": session.id})
        return _stay(session, ActionResult.fail(ErrorKind.TRANSIENT, GENERIC_ERROR_MESSAGE))

    if not student:
        return _stay(session, ActionResult.fail(ErrorKind.NOT_FOUND, "Student not found."))

    if clean_input != normalize_phone(student.phone):
        log_with_context(logger, "INFO", "Phone number mismatch",
                         context={"session_id": session.id, "student_id": student.student_id})
        return _stay(session, ActionResult.fail(
            ErrorKind.VALIDATION,
            "Phone number does not match our records. Please check and try again."))

    issued = issue_otp(db, session.student_id, now=now, sender=sender)
    if not issued.success:
        return _stay(session, issued, retry_after=issued.retry_after)

    _advance(db, session, target)
    return StepResult.ok(issued.message, step=target, masked_phone=session.masked_phone,
                         cooldown_seconds=issued.cooldown_seconds)


def resend_code(db: Session, session: VoterSession,
                now: Optional[datetime] = None, sender: Sender = send_otp_sms) -> StepResult:
    """OTP step self-loop: issue a fresh code under the same rate limits."""
    target = next_step(VerificationEvent.RESEND_CODE, current_step(session))
    if target is None:
        return _refuse(session, VerificationEvent.RESEND_CODE)

    issued = issue_otp(db, session.student_id, now=now, sender=sender)
    if not issued.success:
        return _stay(session, issued, retry_after=issued.retry_after)

    return StepResult.ok("New verification code sent!", step=target,
                         masked_phone=session.masked_phone,
                         cooldown_seconds=issued.cooldown_seconds)


def submit_code(db: Session, session: VoterSession, code: str,
                now: Optional[datetime] = None) -> StepResult:
    """OTP step: a valid code completes verification."""
    target = next_step(VerificationEvent.SUBMIT_CODE, current_step(session))
    if target is None:
        return _refuse(session, VerificationEvent.SUBMIT_CODE)

    verified = verify_otp(db, session.student_id, code, now=now)
    if not verified.success:
        return _stay(session, verified)

    try:
        session.verified_at = now or utcnow()
        _advance(db, session, target)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to store verified session: {}".format(str(e)),
                         context={"session_id": session.id})
        return _stay(session, ActionResult.fail(ErrorKind.TRANSIENT, GENERIC_ERROR_MESSAGE))

    log_with_context(logger, "INFO", "Voter verified",
                     context={"session_id": session.id, "student_id": session.student_id})
    return StepResult.ok("Verification complete.", step=target, masked_phone=session.masked_phone)


def go_back(db: Session, session: VoterSession) -> StepResult:
    """Step back one stage. Leaving the phone step forgets the student."""
    target = next_step(VerificationEvent.GO_BACK, current_step(session))
    if target is None:
        return _refuse(session, VerificationEvent.GO_BACK)

    if target == VerificationStep.ID_VERIFICATION:
        session.student_id = None
        session.masked_phone = None
    _advance(db, session, target)
    return StepResult.ok("", step=target, masked_phone=session.masked_phone)
