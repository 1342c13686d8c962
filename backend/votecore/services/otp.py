"""
OTP Service - issuance, rate limiting and verification of SMS codes.

Issuance policy, evaluated in order:
1. Invalidate every unused code for the student (only the newest can verify)
2. Cooldown: refuse if the last code is younger than OTP_COOLDOWN_SECONDS,
   reporting the remaining wait in seconds
3. Hourly cap: refuse once OTP_HOURLY_LIMIT codes exist in the last hour
4. Resolve the student and their phone number
5. Generate a uniformly random 6-digit code expiring in OTP_EXPIRY_SECONDS
6. Persist the record BEFORE delivery
7. Deliver; a rejected delivery, or a sender that raises, burns the stored code

Verification accepts only the newest matching, unused, unexpired record and
consumes it. Failure reasons are never distinguished in the message.
Each wrong guess counts against the active code, which is burned after
OTP_MAX_FAILED_ATTEMPTS of them.

The cooldown and cap are read-then-write without a lock. Two concurrent
issuances can both pass the checks; step 1 of the next issuance bounds
the damage to a single extra SMS.
"""

import math
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from votecore import config
from votecore.database import utcnow
from votecore.models.sms_otp import SmsOtp
from votecore.services.identity import find_student_by_id, normalize_student_id
from votecore.services.outcomes import ActionResult, ErrorKind
from votecore.services.sms import DeliveryResult, send_otp_sms
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("otp")

OTP_CODE_PATTERN = re.compile(r"^\d{6}$")
OTP_MIN = 100000
OTP_MAX = 999999

HOURLY_LIMIT_MESSAGE = "Too many OTP requests. Please try again after 1 hour or contact support."
INVALID_CODE_MESSAGE = "Invalid or expired verification code. Please try again."

Sender = Callable[[str, str], DeliveryResult]


class OtpIssueResult(ActionResult):
    retry_after: Optional[int] = None       # seconds, only on cooldown refusals
    cooldown_seconds: Optional[int] = None  # client countdown after a send


def generate_otp_code() -> str:
    """Uniformly random 6-digit code in [100000, 999999]."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def cooldown_remaining(last_issued_at: datetime, now: datetime) -> int:
    """
    Seconds left before another code may be issued.

    Elapsed time is rounded up, so the result is at most the full cooldown
    and anything <= 0 means the cooldown has passed.
    """
    elapsed = math.ceil((now - last_issued_at).total_seconds())
    return config.OTP_COOLDOWN_SECONDS - elapsed


def invalidate_unused_otps(db: Session, student_id: str) -> int:
    """Mark every unused code of a student as used. Returns rows touched."""
    outcome = db.execute(
        update(SmsOtp)
        .where(SmsOtp.student_id == student_id, SmsOtp.used.is_(False))
        .values(used=True)
    )
    db.commit()
    return outcome.rowcount


def issue_otp(db: Session, student_id: str, now: Optional[datetime] = None,
              sender: Sender = send_otp_sms) -> OtpIssueResult:
    """
    Issue a new verification code for a student and deliver it by SMS.

    Args:
        db: Database session
        student_id: Raw student ID as entered
        now: Current naive-UTC time (defaults to utcnow)
        sender: Delivery function ``(phone, code) -> DeliveryResult``

    Returns:
        OtpIssueResult; on success ``cooldown_seconds`` tells the client how
        long to disable the resend button.
    """
    now = now or utcnow()
    clean_id = normalize_student_id(student_id)
    if not clean_id:
        return OtpIssueResult.fail(ErrorKind.VALIDATION, "Please enter your student ID.")

    try:
        # Step 1: only the newest issued code may ever verify
        invalidated = invalidate_unused_otps(db, clean_id)
        if invalidated:
            log_with_context(logger, "DEBUG", "Invalidated {} unused OTP(s)".format(invalidated),
                             context={"student_id": clean_id})

        # Step 2: cooldown between consecutive codes
        cooldown_start = now - timedelta(seconds=config.OTP_COOLDOWN_SECONDS)
        last_otp = db.query(SmsOtp).filter(
            SmsOtp.student_id == clean_id,
            SmsOtp.created_at > cooldown_start
        ).order_by(SmsOtp.created_at.desc()).first()

        if last_otp:
            wait_time = cooldown_remaining(last_otp.created_at, now)
            if wait_time > 0:
                log_with_context(logger, "INFO", "OTP cooldown active, wait {}s".format(wait_time),
                                 context={"student_id": clean_id})
                return OtpIssueResult.fail(
                    ErrorKind.RATE_LIMITED,
                    "Please wait {} seconds before requesting another OTP.".format(wait_time),
                    retry_after=wait_time)

        # Step 3: hourly cap, independent of the cooldown
        window_start = now - timedelta(seconds=config.OTP_HOURLY_WINDOW_SECONDS)
        hourly_count = db.query(SmsOtp).filter(
            SmsOtp.student_id == clean_id,
            SmsOtp.created_at > window_start
        ).count()

        if hourly_count >= config.OTP_HOURLY_LIMIT:
            log_with_context(logger, "WARNING", "Hourly OTP limit reached",
                             context={"student_id": clean_id},
                             extra_data={"hourly_count": hourly_count})
            return OtpIssueResult.fail(ErrorKind.RATE_LIMITED, HOURLY_LIMIT_MESSAGE)

        # Step 4: resolve the student's phone
        student = find_student_by_id(db, clean_id)
        if not student:
            return OtpIssueResult.fail(ErrorKind.NOT_FOUND,
                                       "Student not found. Please check your ID and try again.")
        if student.has_voted:
            return OtpIssueResult.fail(ErrorKind.CONFLICT, "You have already voted in this election.")
        if not student.phone:
            return OtpIssueResult.fail(ErrorKind.VALIDATION,
                                       "Student record is incomplete. Please contact the administrator.")

        # Steps 5 and 6: generate and persist before any delivery attempt
        otp_record = SmsOtp(
            student_id=clean_id,
            phone=student.phone,
            otp_code=generate_otp_code(),
            created_at=now,
            expires_at=now + timedelta(seconds=config.OTP_EXPIRY_SECONDS),
            used=False,
        )
        db.add(otp_record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "OTP issuance failed: {}".format(str(e)),
                         context={"student_id": clean_id})
        return OtpIssueResult.fail(ErrorKind.TRANSIENT,
                                   "Failed to generate verification code. Please try again.")

    otp_id = otp_record.id
    log_with_context(logger, "INFO", "OTP stored",
                     context={"student_id": clean_id, "otp_id": otp_id},
                     extra_data={"expires_at": otp_record.expires_at.isoformat()})

    # Step 7: deliver, burning the code if the gateway rejects it or the sender raises
    try:
        delivery = sender(otp_record.phone, otp_record.otp_code)
    except Exception as e:
        log_with_context(logger, "ERROR", "SMS sender raised: {}".format(repr(e)),
                         context={"student_id": clean_id, "otp_id": otp_id})
        delivery = DeliveryResult.fail(ErrorKind.TRANSIENT, "SMS sender error")
    if not delivery.success:
        try:
            db.execute(update(SmsOtp).where(SmsOtp.id == otp_id).values(used=True))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log_with_context(logger, "ERROR", "Failed to burn undelivered OTP: {}".format(str(e)),
                             context={"student_id": clean_id, "otp_id": otp_id})
        log_with_context(logger, "ERROR", "SMS delivery failed, OTP burned",
                         context={"student_id": clean_id, "otp_id": otp_id})
        return OtpIssueResult.fail(ErrorKind.TRANSIENT,
                                   "Failed to send SMS verification code. Please try again.")

    log_with_context(logger, "INFO", "OTP delivered",
                     context={"student_id": clean_id, "otp_id": otp_id},
                     extra_data={"mode": delivery.mode})
    return OtpIssueResult.ok("Verification code sent to your phone number.",
                             cooldown_seconds=config.OTP_COOLDOWN_SECONDS)


def record_failed_attempt(db: Session, student_id: str, now: datetime) -> bool:
    """
    Count a wrong guess against the student's active code and burn the code
    once OTP_MAX_FAILED_ATTEMPTS is reached. Returns True if it was burned.
    """
    active = db.query(SmsOtp.id).filter(
        SmsOtp.student_id == student_id,
        SmsOtp.used.is_(False),
        SmsOtp.expires_at > now
    ).order_by(SmsOtp.created_at.desc()).first()
    if not active:
        return False

    db.execute(
        update(SmsOtp)
        .where(SmsOtp.id == active.id)
        .values(failed_attempts=SmsOtp.failed_attempts + 1)
    )
    burned = db.execute(
        update(SmsOtp)
        .where(SmsOtp.id == active.id, SmsOtp.used.is_(False),
               SmsOtp.failed_attempts >= config.OTP_MAX_FAILED_ATTEMPTS)
        .values(used=True)
    )
    db.commit()
    if burned.rowcount:
        log_with_context(logger, "WARNING", "OTP burned after too many wrong guesses",
                         context={"student_id": student_id, "otp_id": active.id})
    return bool(burned.rowcount)


def verify_otp(db: Session, student_id: str, code: str,
               now: Optional[datetime] = None) -> ActionResult:
    """
    Check a submitted code against the student's active OTP and consume it.

    Wrong, expired and already-used codes all produce the same message. A
    wrong code counts against the active one, see ``record_failed_attempt``.
    """
    now = now or utcnow()
    clean_id = normalize_student_id(student_id)
    clean_code = (code or "").strip()

    if not OTP_CODE_PATTERN.match(clean_code):
        return ActionResult.fail(ErrorKind.VALIDATION, "Please enter the 6-digit verification code.")

    try:
        otp_record = db.query(SmsOtp).filter(
            SmsOtp.student_id == clean_id,
            SmsOtp.otp_code == clean_code,
            SmsOtp.used.is_(False),
            SmsOtp.expires_at > now
        ).order_by(SmsOtp.created_at.desc()).first()

        if not otp_record:
            burned = record_failed_attempt(db, clean_id, now)
            log_with_context(logger, "INFO", "OTP verification failed",
                             context={"student_id": clean_id},
                             extra_data={"code_burned": burned})
            return ActionResult.fail(ErrorKind.VALIDATION, INVALID_CODE_MESSAGE)

        otp_id = otp_record.id
        # Conditional update: a concurrent verification of the same code loses
        consumed = db.execute(
            update(SmsOtp)
            .where(SmsOtp.id == otp_id, SmsOtp.used.is_(False))
            .values(used=True)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "OTP verification error: {}".format(str(e)),
                         context={"student_id": clean_id})
        return ActionResult.fail(ErrorKind.TRANSIENT, "Failed to verify code. Please try again.")

    if consumed.rowcount == 0:
        return ActionResult.fail(ErrorKind.VALIDATION, INVALID_CODE_MESSAGE)

    log_with_context(logger, "INFO", "OTP verified",
                     context={"student_id": clean_id, "otp_id": otp_id})
    return ActionResult.ok("Phone number verified.")


def purge_stale_otps(db: Session, now: Optional[datetime] = None) -> int:
    """
    Delete OTP records older than the hourly rate-limit window.

    Records inside the window are kept because the hourly cap counts them.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=config.OTP_HOURLY_WINDOW_SECONDS)
    try:
        outcome = db.execute(delete(SmsOtp).where(SmsOtp.created_at < cutoff))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "OTP purge failed: {}".format(str(e)))
        return 0

    log_with_context(logger, "INFO", "Purged {} stale OTP record(s)".format(outcome.rowcount),
                     extra_data={"cutoff": cutoff.isoformat()})
    return outcome.rowcount
