"""
Student details routes - the detail-completion step after verification.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from votecore.database import get_db
from votecore.dependencies import get_verified_student_id, respond
from votecore.services import identity

router = APIRouter()


class EmailRequest(BaseModel):
    email: str


@router.get("/api/students/me")
def get_my_details(student_id: str = Depends(get_verified_student_id), db: Session = Depends(get_db)):
    """Name, programme and level of the verified student."""
    return respond(identity.get_student_details(db, student_id))


@router.post("/api/students/email-check")
def check_email(request: EmailRequest, student_id: str = Depends(get_verified_student_id),
                db: Session = Depends(get_db)):
    return respond(identity.check_email_availability(db, request.email))


@router.post("/api/students/me/details")
def save_my_details(request: EmailRequest, student_id: str = Depends(get_verified_student_id),
                    db: Session = Depends(get_db)):
    """Store the student's email. Allowed once per student."""
    return respond(identity.save_student_details(db, student_id, request.email))
