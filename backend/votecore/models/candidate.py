"""
Candidate model - a person standing in exactly one voting category.
"""

from sqlalchemy import Column, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from votecore.database import Base


class Candidate(Base):
    """SQLAlchemy model for the candidates table."""
    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    category_id = Column(Integer, ForeignKey("voting_categories.id"), nullable=False)
    photo_url = Column(Text, nullable=True)

    category = relationship("VotingCategory", back_populates="candidates")

    __table_args__ = (
        Index("ix_candidates_category_id", "category_id"),
    )

    def __repr__(self):
        return f"<Candidate(id={self.id}, name='{self.name}', category={self.category_id})>"
