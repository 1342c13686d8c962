"""
Verification API routes - drives a voter through ID, phone and OTP checks.

Each endpoint fires one event on the session's state machine and returns
the resulting step, so the client never decides which step comes next.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from votecore.database import get_db
from votecore.dependencies import respond
from votecore.models.voter_session import VoterSession
from votecore.services import verification
from votecore.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class StudentIdRequest(BaseModel):
    student_id: str = Field(..., description="Student ID as printed on the ID card")


class PhoneRequest(BaseModel):
    phone_number: str = Field(..., description="Full phone number on record")


class CodeRequest(BaseModel):
    code: str = Field(..., description="6-digit code received by SMS")


class SessionResponse(BaseModel):
    session_id: str
    step: str
    masked_phone: Optional[str] = None


def _load_session(session_id: str, db: Session) -> VoterSession:
    session = verification.get_session(db, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Verification session not found")
    return session


@router.post("/api/verification/sessions", response_model=SessionResponse, status_code=201)
def create_session(db: Session = Depends(get_db)):
    """Start a new verification session at the student ID step."""
    session = verification.start_session(db)
    return SessionResponse(session_id=session.id, step=session.step)


@router.get("/api/verification/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: str, db: Session = Depends(get_db)):
    """Current step of a session, e.g. to restore the UI after a reload."""
    session = _load_session(session_id, db)
    return SessionResponse(session_id=session.id, step=session.step, masked_phone=session.masked_phone)


@router.post("/api/verification/sessions/{session_id}/student-id")
def submit_student_id(session_id: str, request: StudentIdRequest, db: Session = Depends(get_db)):
    session = _load_session(session_id, db)
    return respond(verification.submit_student_id(db, session, request.student_id))


@router.post("/api/verification/sessions/{session_id}/phone")
def submit_phone(session_id: str, request: PhoneRequest, db: Session = Depends(get_db)):
    """Match the full phone number and send the first OTP."""
    session = _load_session(session_id, db)
    return respond(verification.submit_phone(db, session, request.phone_number))


@router.post("/api/verification/sessions/{session_id}/resend")
def resend_code(session_id: str, db: Session = Depends(get_db)):
    session = _load_session(session_id, db)
    return respond(verification.resend_code(db, session))


@router.post("/api/verification/sessions/{session_id}/otp")
def submit_code(session_id: str, request: CodeRequest, db: Session = Depends(get_db)):
    """Verify the SMS code. On success the session becomes the voter's credential."""
    session = _load_session(session_id, db)
    result = verification.submit_code(db, session, request.code)
    if result.success:
        log_with_context(logger, "INFO", "Session verified",
                         context={"session_id": session_id})
    return respond(result)


@router.post("/api/verification/sessions/{session_id}/back")
def go_back(session_id: str, db: Session = Depends(get_db)):
    session = _load_session(session_id, db)
    return respond(verification.go_back(db, session))
