"""
Voting Gate - the global voting-open switch.

The flag lives in a single versioned row and is read fresh on every call,
so an administrator's toggle takes effect on the very next check.
"""

from sqlalchemy.orm import Session

from votecore.database import utcnow
from votecore.models.voting_status import VotingStatus, VOTING_STATUS_ROW_ID
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("ballot")

# Reading with no status row seeded treats the election as open
DEFAULT_VOTING_OPEN = True


def get_voting_status(db: Session) -> VotingStatus:
    """Return the status row, creating it with the default on first use."""
    status = db.get(VotingStatus, VOTING_STATUS_ROW_ID, populate_existing=True)
    if status is None:
        status = VotingStatus(id=VOTING_STATUS_ROW_ID, is_open=DEFAULT_VOTING_OPEN, version=1)
        db.add(status)
        db.commit()
        db.refresh(status)
    return status


def is_voting_open(db: Session) -> bool:
    """Read the voting-open flag. Never cached beyond this call."""
    status = db.get(VotingStatus, VOTING_STATUS_ROW_ID, populate_existing=True)
    if status is None:
        return DEFAULT_VOTING_OPEN
    return bool(status.is_open)


def set_voting_open(db: Session, is_open: bool) -> VotingStatus:
    """Toggle the voting-open flag and bump its version."""
    status = get_voting_status(db)
    status.is_open = bool(is_open)
    status.version = (status.version or 0) + 1
    status.updated_at = utcnow()
    db.commit()
    db.refresh(status)

    log_with_context(logger, "INFO", "Voting {}".format("opened" if status.is_open else "closed"),
                     extra_data={"version": status.version})
    return status
