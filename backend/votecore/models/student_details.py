"""
StudentDetails model - one-to-one enrichment of a Student with an email.

Created once during the detail-completion step after phone verification.
The student ID is the primary key, so a second insert for the same student
fails, and the email is unique across all students.
"""

from sqlalchemy import Column, Text, DateTime, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from votecore.database import Base, utcnow


class StudentDetails(Base):
    """SQLAlchemy model for the student_details table."""
    __tablename__ = "student_details"

    student_id = Column(String(32), ForeignKey("students.student_id"), primary_key=True,
                        doc="Reference to the student (also serves as PK)")
    name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    programme = Column(Text, nullable=True)
    level = Column(String(16), nullable=True)
    email = Column(Text, nullable=False,
                   doc="Normalized (trimmed, lower-cased) email address")
    created_at = Column(DateTime, default=utcnow)

    student = relationship("Student", back_populates="details")

    __table_args__ = (
        UniqueConstraint("email", name="unique_student_email"),
    )

    def __repr__(self):
        return f"<StudentDetails(student_id={self.student_id}, email='{self.email}')>"
