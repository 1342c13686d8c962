"""
FastAPI dependencies shared by the route modules.

Voter endpoints past verification identify the caller by the
``X-Voter-Session`` header; ballot endpoints additionally require the
details step to be done. Admin endpoints use ``X-Admin-Token``.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from votecore import config
from votecore.database import get_db
from votecore.models.voter_session import VoterSession
from votecore.services.identity import DETAILS_REQUIRED_MESSAGE, has_saved_details
from votecore.services.outcomes import ActionResult
from votecore.services.verification import get_session, verified_student_id


def respond(result: ActionResult) -> JSONResponse:
    """Serialize a service result with the status code for its kind."""
    return JSONResponse(status_code=result.status_code, content=result.model_dump(mode="json"))


def get_voter_session(x_voter_session: Optional[str] = Header(None),
                      db: Session = Depends(get_db)) -> VoterSession:
    session = get_session(db, x_voter_session)
    if session is None:
        raise HTTPException(status_code=401, detail="Verification session not found. Please start again.")
    return session


def get_verified_student_id(session: VoterSession = Depends(get_voter_session)) -> str:
    """Student ID handed off by a completed verification session."""
    student_id = verified_student_id(session)
    if student_id is None:
        raise HTTPException(status_code=403,
                            detail="Verification missing or expired. Please verify your identity.")
    return student_id


def get_ballot_student_id(student_id: str = Depends(get_verified_student_id),
                          db: Session = Depends(get_db)) -> str:
    """Verified student who has also completed the details step."""
    if not has_saved_details(db, student_id):
        raise HTTPException(status_code=403, detail=DETAILS_REQUIRED_MESSAGE)
    return student_id


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    expected = config.ADMIN_TOKEN
    if not expected:
        raise HTTPException(status_code=503, detail="Admin access is not configured.")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Invalid admin token.")
