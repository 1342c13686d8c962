"""
Identity Service - student lookups, normalization and detail completion.

A thin adapter over the students and student_details tables:
1. Student ID / phone / email normalization
2. Masked phone hints for the verification flow
3. Student lookup and the one-way ``has_voted`` flag
4. Pre-vote detail completion (unique email per student)
"""

import re
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from votecore.models.student import Student
from votecore.models.student_details import StudentDetails
from votecore.services.outcomes import ActionResult, ErrorKind, GENERIC_ERROR_MESSAGE
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("db")

PHONE_SEPARATORS = re.compile(r"[\s\-()]")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MASK_CHAR = "*"

EMAIL_TAKEN_MESSAGE = "This email address has already been used by another student."
DETAILS_EXIST_MESSAGE = "You have already completed your details."
DETAILS_REQUIRED_MESSAGE = "Please complete your details before voting."


class StudentProfile(BaseModel):
    """Display fields handed to the detail-completion and ballot stages."""
    student_id: str
    name: Optional[str] = None
    programme: Optional[str] = None
    level: Optional[str] = None


class ProfileResult(ActionResult):
    student: Optional[StudentProfile] = None


def normalize_student_id(student_id: str) -> str:
    """Student IDs are case-insensitive: trim and lower-case."""
    if not student_id:
        return ""
    return student_id.strip().lower()


def normalize_phone(phone: str) -> str:
    """
    Strip spaces, dashes and parentheses from a phone number.

    Examples:
        "024 123 4567"   → "0241234567"
        "(024) 123-4567" → "0241234567"
    """
    if not phone:
        return ""
    return PHONE_SEPARATORS.sub("", phone).strip()


def normalize_email(email: str) -> str:
    if not email:
        return ""
    return email.strip().lower()


def mask_phone_number(phone: str) -> str:
    """
    Build the partially masked phone hint shown after the ID step.

    Local 10-digit numbers with a leading trunk prefix keep the first three
    and the last digit ("0241234567" → "024******7"). Other lengths keep the
    same first three / last one shape with a mask for everything between.
    Numbers shorter than four characters are returned unchanged.
    """
    if not phone or len(phone) < 4:
        return phone

    if len(phone) == 10 and phone.startswith("0"):
        return phone[:3] + MASK_CHAR * 6 + phone[9:]

    return phone[:3] + MASK_CHAR * (len(phone) - 4) + phone[-1]


def find_student_by_id(db: Session, student_id: str) -> Optional[Student]:
    """Look up a student by (normalized) student ID."""
    clean_id = normalize_student_id(student_id)
    if not clean_id:
        return None
    return db.query(Student).filter(Student.student_id == clean_id).first()


def set_has_voted(db: Session, student_id: str) -> int:
    """
    Set ``has_voted = True`` for a student.

    Unconditional, monotone write: repeating it is harmless. Returns the
    number of rows matched so callers can detect an unknown student.
    """
    clean_id = normalize_student_id(student_id)
    outcome = db.execute(
        update(Student)
        .where(Student.student_id == clean_id)
        .values(has_voted=True)
    )
    db.commit()
    return outcome.rowcount


def get_student_details(db: Session, student_id: str) -> ProfileResult:
    """Return the name, programme and level shown on the detail form."""
    try:
        student = find_student_by_id(db, student_id)
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Student lookup failed: {}".format(str(e)),
                         context={"student_id": normalize_student_id(student_id)})
        return ProfileResult.fail(ErrorKind.TRANSIENT, GENERIC_ERROR_MESSAGE)

    if not student:
        return ProfileResult.fail(ErrorKind.NOT_FOUND, "Student not found.")

    return ProfileResult.ok(student=StudentProfile(
        student_id=student.student_id,
        name=student.name,
        programme=student.programme,
        level=student.level,
    ))


def has_saved_details(db: Session, student_id: str) -> bool:
    """True once the student has completed the details step."""
    clean_id = normalize_student_id(student_id)
    return bool(clean_id) and db.get(StudentDetails, clean_id) is not None


def check_email_availability(db: Session, email: str) -> ActionResult:
    """Check that an email is well-formed and not yet used by any student."""
    clean_email = normalize_email(email)
    if not clean_email or not EMAIL_PATTERN.match(clean_email):
        return ActionResult.fail(ErrorKind.VALIDATION, "Please enter a valid email address.")

    try:
        existing = db.query(StudentDetails).filter(StudentDetails.email == clean_email).first()
    except SQLAlchemyError as e:
        log_with_context(logger, "ERROR", "Email availability check failed: {}".format(str(e)))
        return ActionResult.fail(ErrorKind.TRANSIENT,
                                 "Error checking email availability. Please try again.")

    if existing:
        return ActionResult.fail(ErrorKind.CONFLICT, EMAIL_TAKEN_MESSAGE)

    return ActionResult.ok("Email is available.")


def save_student_details(db: Session, student_id: str, email: str) -> ActionResult:
    """
    Record the student's email alongside a snapshot of their record.

    The pre-check gives a friendly message; the primary key on student_id
    and the unique email constraint decide the race.
    """
    clean_id = normalize_student_id(student_id)

    email_check = check_email_availability(db, email)
    if not email_check.success:
        return email_check

    try:
        student = find_student_by_id(db, clean_id)
        if not student:
            return ActionResult.fail(ErrorKind.NOT_FOUND, "Student not found.")

        if db.get(StudentDetails, clean_id) is not None:
            return ActionResult.fail(ErrorKind.CONFLICT, DETAILS_EXIST_MESSAGE)

        db.add(StudentDetails(
            student_id=clean_id,
            name=student.name,
            phone=student.phone,
            programme=student.programme,
            level=student.level,
            email=normalize_email(email),
        ))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        log_with_context(logger, "WARNING", "Student details insert conflicted",
                         context={"student_id": clean_id},
                         extra_data={"error": str(e.orig)})
        if "email" in str(e.orig).lower():
            return ActionResult.fail(ErrorKind.CONFLICT, EMAIL_TAKEN_MESSAGE)
        return ActionResult.fail(ErrorKind.CONFLICT, DETAILS_EXIST_MESSAGE)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to save student details: {}".format(str(e)),
                         context={"student_id": clean_id})
        return ActionResult.fail(ErrorKind.TRANSIENT,
                                 "Failed to save student details. Please try again.")

    log_with_context(logger, "INFO", "Student details saved",
                     context={"student_id": clean_id})
    return ActionResult.ok("Details saved.")
