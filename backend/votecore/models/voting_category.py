"""
VotingCategory model - an electoral position such as "Presidential".

Static reference data, read-only to the voting core.
"""

from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship
from votecore.database import Base


class VotingCategory(Base):
    """SQLAlchemy model for the voting_categories table."""
    __tablename__ = "voting_categories"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    display_order = Column(Integer, nullable=False, default=0,
                           doc="Ballot ordering, ascending")

    candidates = relationship("Candidate", back_populates="category",
                              order_by="Candidate.id")

    def __repr__(self):
        return f"<VotingCategory(id={self.id}, name='{self.name}')>"
