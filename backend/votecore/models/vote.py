"""
Vote model - a single ballot choice by one student in one category.

At most one row may exist per (student_id, category_id). The application
checks first for a friendly message; the unique constraint is what holds
the invariant under concurrent submissions.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, String, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from votecore.database import Base, utcnow


class Vote(Base):
    """SQLAlchemy model for the votes table."""
    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(32), ForeignKey("students.student_id"), nullable=False)
    candidate_id = Column(Integer, ForeignKey("candidates.id"), nullable=False)
    category_id = Column(Integer, ForeignKey("voting_categories.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    student = relationship("Student", back_populates="votes")
    candidate = relationship("Candidate")
    category = relationship("VotingCategory")

    __table_args__ = (
        UniqueConstraint("student_id", "category_id", name="uq_votes_student_category"),
        Index("ix_votes_candidate_id", "candidate_id"),
    )

    def __repr__(self):
        return f"<Vote(student={self.student_id}, category={self.category_id}, candidate={self.candidate_id})>"
