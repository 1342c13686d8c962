"""
Student model - the electorate, pre-seeded before the election opens.

Each student is identified by their institutional student ID, stored
trimmed and lower-cased so lookups are case-insensitive.
"""

from sqlalchemy import Column, Text, DateTime, String, Boolean
from sqlalchemy.orm import relationship
from votecore.database import Base, utcnow


class Student(Base):
    """
    SQLAlchemy model for the students table.
    
    ``has_voted`` flips exactly once, from False to True, when the student
    has a recorded vote in every category. Nothing in this service resets it.
    """
    __tablename__ = "students"

    student_id = Column(String(32), primary_key=True,
                        doc="Normalized (trimmed, lower-cased) student ID")
    name = Column(Text, nullable=True,
                  doc="Student's full name")
    phone = Column(Text, nullable=True,
                   doc="Phone number on record, used for OTP delivery")
    programme = Column(Text, nullable=True,
                       doc="Programme of study")
    level = Column(String(16), nullable=True,
                   doc="Academic level, e.g. '100' or '400'")
    has_voted = Column(Boolean, nullable=False, default=False,
                       doc="True once the student has voted in every category")
    created_at = Column(DateTime, default=utcnow,
                        doc="Timestamp when the student record was seeded")

    details = relationship("StudentDetails", back_populates="student", uselist=False)
    votes = relationship("Vote", back_populates="student")
    otps = relationship("SmsOtp", back_populates="student")

    @property
    def is_complete(self) -> bool:
        """True when every field needed to verify and vote is present."""
        return bool(self.name and self.phone and self.programme and self.level)

    def __repr__(self):
        return f"<Student(student_id={self.student_id}, name='{self.name}', has_voted={self.has_voted})>"
