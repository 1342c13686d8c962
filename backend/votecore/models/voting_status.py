"""
VotingStatus model - the single global voting-open switch.

Only the row with ``id = 1`` is meaningful. ``version`` increases on every
toggle so administrators can see that a change took effect.
"""

from sqlalchemy import Column, Integer, Boolean, DateTime
from votecore.database import Base, utcnow

VOTING_STATUS_ROW_ID = 1


class VotingStatus(Base):
    """SQLAlchemy model for the voting_status table."""
    __tablename__ = "voting_status"

    id = Column(Integer, primary_key=True, default=VOTING_STATUS_ROW_ID)
    is_open = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<VotingStatus(is_open={self.is_open}, version={self.version})>"
