"""
Ballot API routes - casting votes once verification and the details step are complete.

Provides endpoints for:
- Loading the ballot (categories, candidates, progress, open flag)
- Casting one vote per category
- Finishing a resumed ballot
- The confirmation signal once every category has a vote
"""

import time

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from votecore.database import get_db
from votecore.dependencies import (
    get_ballot_student_id, get_voter_session, get_verified_student_id, respond
)
from votecore.models.voter_session import VoterSession
from votecore.services import ballot
from votecore.services.identity import find_student_by_id
from votecore.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class VoteRequest(BaseModel):
    candidate_id: int = Field(..., gt=0)
    category_id: int = Field(..., gt=0)


def _remember_completion(db: Session, session: VoterSession, receipt: ballot.BallotReceipt):
    if receipt.success and receipt.voting_complete and not session.voting_complete:
        session.voting_complete = True
        db.commit()


@router.get("/api/ballot")
def get_ballot(student_id: str = Depends(get_ballot_student_id), db: Session = Depends(get_db)):
    """Ballot contents plus the categories this student has already voted in."""
    data = ballot.get_voting_data(db)
    progress = ballot.ballot_progress(db, student_id)
    return {
        "voting_open": data.voting_open,
        "categories": [c.model_dump() for c in data.categories],
        "voted_category_ids": progress.voted_category_ids,
        "total_categories": progress.total_categories,
        "complete": progress.complete,
    }


@router.post("/api/ballot/votes")
def cast_vote(request: VoteRequest,
              session: VoterSession = Depends(get_voter_session),
              student_id: str = Depends(get_ballot_student_id),
              db: Session = Depends(get_db)):
    """Cast a vote in one category; the last category finalizes the ballot."""
    start_time = time.time()

    receipt = ballot.cast_vote(db, student_id, request.candidate_id, request.category_id)
    _remember_completion(db, session, receipt)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Vote request handled: {}".format("accepted" if receipt.success else receipt.kind.value),
        context={"student_id": student_id, "category_id": request.category_id},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return respond(receipt)


@router.post("/api/ballot/finish")
def finish_ballot(session: VoterSession = Depends(get_voter_session),
                  student_id: str = Depends(get_ballot_student_id),
                  db: Session = Depends(get_db)):
    receipt = ballot.finalize_if_complete(db, student_id)
    _remember_completion(db, session, receipt)
    return respond(receipt)


@router.get("/api/ballot/confirmation")
def get_confirmation(session: VoterSession = Depends(get_voter_session),
                     student_id: str = Depends(get_verified_student_id),
                     db: Session = Depends(get_db)):
    """The "voting complete" signal and display name for the confirmation view."""
    if not session.voting_complete:
        raise HTTPException(status_code=404, detail="Voting is not complete for this session")

    student = find_student_by_id(db, student_id)
    return {
        "voting_complete": True,
        "student_name": student.name if student else None,
    }
