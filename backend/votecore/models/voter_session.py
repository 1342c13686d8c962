"""
VoterSession model - server-side storage for one voter's verification flow.

The row is the session-scoped hand-off between stages: it records the
current verification step, the masked phone hint shown to the client,
the verified student identity once the OTP is accepted, and the
"voting complete" signal once every category has a vote.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Boolean
from votecore.database import Base, utcnow


class VoterSession(Base):
    """SQLAlchemy model for the voter_sessions table."""
    __tablename__ = "voter_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Opaque session token handed to the client")
    step = Column(String(32), nullable=False, default="id-verification",
                  doc="Current VerificationStep value")
    student_id = Column(String(32), ForeignKey("students.student_id"), nullable=True,
                        doc="Student named in the ID step, verified once step is 'success'")
    masked_phone = Column(Text, nullable=True,
                          doc="Masked phone hint, the only phone form exposed to the client")
    verified_at = Column(DateTime, nullable=True)
    voting_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<VoterSession(id={self.id}, step='{self.step}', student={self.student_id})>"
