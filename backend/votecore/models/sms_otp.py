"""
SmsOtp model - one-time codes sent by SMS to confirm phone possession.

A record is created on issuance and consumed (``used = True``) on
successful verification, when superseded by a newer issuance, or when
delivery fails. Validity is data-driven: a record is active while it is
unused and ``expires_at`` lies in the future.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, ForeignKey, Index, Integer, String, Boolean
from sqlalchemy.orm import relationship
from votecore.database import Base, utcnow


class SmsOtp(Base):
    """SQLAlchemy model for the sms_otps table."""
    __tablename__ = "sms_otps"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique OTP record identifier")
    student_id = Column(String(32), ForeignKey("students.student_id"), nullable=False,
                        doc="Student the code was issued to")
    phone = Column(Text, nullable=False,
                   doc="Snapshot of the phone number the code was sent to")
    otp_code = Column(String(6), nullable=False,
                      doc="Six-digit numeric code")
    created_at = Column(DateTime, nullable=False, default=utcnow,
                        doc="Issuance time (naive UTC), drives rate limiting")
    expires_at = Column(DateTime, nullable=False,
                        doc="Issuance time + 10 minutes")
    used = Column(Boolean, nullable=False, default=False,
                  doc="True once verified, superseded, burned by a failed send or by too many wrong guesses")
    failed_attempts = Column(Integer, nullable=False, default=0,
                             doc="Wrong codes submitted while this record was the active one")

    student = relationship("Student", back_populates="otps")

    __table_args__ = (
        Index("ix_sms_otps_student_created", "student_id", "created_at"),
        Index("ix_sms_otps_student_used", "student_id", "used"),
    )

    def __repr__(self):
        return f"<SmsOtp(id={self.id}, student={self.student_id}, used={self.used})>"
