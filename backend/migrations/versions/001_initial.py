"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2025-09-01

Creates all database tables for the Student Voting Core:
- students: Pre-seeded electorate with the has_voted flag
- student_details: One-to-one email enrichment (unique email)
- sms_otps: Issued one-time codes with expiry and used flag
- voting_categories / candidates: Ballot reference data
- votes: One row per (student, category), enforced by a unique constraint
- voting_status: Single-row voting-open switch
- voter_sessions: Server-side verification sessions

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Students Table ────────────────────────────────────────
    op.create_table(
        'students',
        sa.Column('student_id', sa.String(32), primary_key=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('programme', sa.Text(), nullable=True),
        sa.Column('level', sa.String(16), nullable=True),
        sa.Column('has_voted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )

    # ── Student Details Table ─────────────────────────────────
    op.create_table(
        'student_details',
        sa.Column('student_id', sa.String(32),
                  sa.ForeignKey('students.student_id'), primary_key=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('programme', sa.Text(), nullable=True),
        sa.Column('level', sa.String(16), nullable=True),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.UniqueConstraint('email', name='unique_student_email'),
    )

    # ── SMS OTPs Table ────────────────────────────────────────
    op.create_table(
        'sms_otps',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(32),
                  sa.ForeignKey('students.student_id'), nullable=False),
        sa.Column('phone', sa.Text(), nullable=False),
        sa.Column('otp_code', sa.String(6), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    # Rate limiting reads recent codes per student; invalidation reads unused ones
    op.create_index('ix_sms_otps_student_created', 'sms_otps', ['student_id', 'created_at'])
    op.create_index('ix_sms_otps_student_used', 'sms_otps', ['student_id', 'used'])

    # ── Ballot Reference Data ─────────────────────────────────
    op.create_table(
        'voting_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'candidates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('voting_categories.id'), nullable=False),
        sa.Column('photo_url', sa.Text(), nullable=True),
    )
    op.create_index('ix_candidates_category_id', 'candidates', ['category_id'])

    # ── Votes Table ───────────────────────────────────────────
    op.create_table(
        'votes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('student_id', sa.String(32),
                  sa.ForeignKey('students.student_id'), nullable=False),
        sa.Column('candidate_id', sa.Integer(),
                  sa.ForeignKey('candidates.id'), nullable=False),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('voting_categories.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        # Authoritative one-vote-per-category guard
        sa.UniqueConstraint('student_id', 'category_id', name='uq_votes_student_category'),
    )
    op.create_index('ix_votes_candidate_id', 'votes', ['candidate_id'])

    # ── Voting Status (single row) ────────────────────────────
    op.create_table(
        'voting_status',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.execute("INSERT INTO voting_status (id, is_open, version) VALUES (1, true, 1)")

    # ── Voter Sessions Table ──────────────────────────────────
    op.create_table(
        'voter_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('step', sa.String(32), nullable=False, server_default='id-verification'),
        sa.Column('student_id', sa.String(32),
                  sa.ForeignKey('students.student_id'), nullable=True),
        sa.Column('masked_phone', sa.Text(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('voting_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('voter_sessions')
    op.drop_table('voting_status')
    op.drop_index('ix_votes_candidate_id', table_name='votes')
    op.drop_table('votes')
    op.drop_index('ix_candidates_category_id', table_name='candidates')
    op.drop_table('candidates')
    op.drop_table('voting_categories')
    op.drop_index('ix_sms_otps_student_used', table_name='sms_otps')
    op.drop_index('ix_sms_otps_student_created', table_name='sms_otps')
    op.drop_table('sms_otps')
    op.drop_table('student_details')
    op.drop_table('students')
