"""
Admin API routes - the voting-open switch and results dashboard data.

All endpoints require the ``X-Admin-Token`` header.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from votecore.database import get_db
from votecore.dependencies import require_admin
from votecore.services import otp, tally, voting_gate
from votecore.logging_config import get_logger, log_with_context

router = APIRouter(dependencies=[Depends(require_admin)])
logger = get_logger("http")


class VotingStatusRequest(BaseModel):
    is_open: bool


def _serialize_status(status) -> dict:
    return {
        "is_open": status.is_open,
        "version": status.version,
        "updated_at": status.updated_at.isoformat() if status.updated_at else None,
    }


@router.get("/api/admin/voting-status")
def get_voting_status(db: Session = Depends(get_db)):
    return _serialize_status(voting_gate.get_voting_status(db))


@router.put("/api/admin/voting-status")
def set_voting_status(request: VotingStatusRequest, db: Session = Depends(get_db)):
    """Open or close voting. Takes effect on the very next vote submission."""
    status = voting_gate.set_voting_open(db, request.is_open)
    log_with_context(logger, "INFO", "Admin set voting open={}".format(request.is_open),
                     extra_data={"version": status.version})
    return _serialize_status(status)


@router.get("/api/admin/stats")
def get_stats(db: Session = Depends(get_db)):
    """Headline turnout plus per-category vote totals."""
    summary = tally.turnout_summary(db)
    results = tally.category_results(db)
    return {
        **summary.model_dump(),
        "category_totals": {r.category_name: r.total_votes for r in results},
    }


@router.get("/api/admin/results")
def get_results(db: Session = Depends(get_db)):
    return {"results": [r.model_dump() for r in tally.category_results(db)]}


@router.get("/api/admin/programme-level-stats")
def get_programme_level_stats(db: Session = Depends(get_db)):
    return tally.programme_level_stats(db).model_dump()


@router.get("/api/admin/voters")
def get_voters(db: Session = Depends(get_db)):
    """Students who finished voting, with their choice per category."""
    rows = tally.voted_students_summary(db)
    return {"count": len(rows), "voters": [r.model_dump() for r in rows]}


@router.post("/api/admin/otps/purge")
def purge_otps(db: Session = Depends(get_db)):
    """Delete OTP records older than the hourly rate-limit window."""
    return {"purged": otp.purge_stale_otps(db)}
