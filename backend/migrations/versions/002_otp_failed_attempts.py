"""Count wrong guesses per OTP

Revision ID: 002_otp_failed_attempts
Revises: 001_initial
Create Date: 2025-09-15

Adds sms_otps.failed_attempts. The active code is burned once it reaches
OTP_MAX_FAILED_ATTEMPTS.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '002_otp_failed_attempts'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'sms_otps',
        sa.Column('failed_attempts', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_column('sms_otps', 'failed_attempts')
