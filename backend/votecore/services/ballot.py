"""
Ballot Service - vote submission, completion detection and finalization.

Rules:
1. A vote needs a student, a candidate and that candidate's category
2. Voting must be open at the moment of submission (re-read every call)
3. At most one vote per (student, category)
4. When every category has a vote, the student is marked as having voted

Rule 3 is checked before the insert for a friendly message, but the
``uq_votes_student_category`` constraint is what enforces it: two
concurrent submissions can both pass the check, and the loser's insert
fails with an IntegrityError that is reported as the same conflict.
"""

from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from votecore.models.candidate import Candidate
from votecore.models.vote import Vote
from votecore.models.voting_category import VotingCategory
from votecore.services.identity import find_student_by_id, normalize_student_id, set_has_voted
from votecore.services.outcomes import ActionResult, ErrorKind, GENERIC_ERROR_MESSAGE
from votecore.services.voting_gate import is_voting_open
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("ballot")

ALREADY_VOTED_MESSAGE = "You have already voted in this category."


# ── Pydantic schemas ─────────────────────────────────────────

class CandidateOut(BaseModel):
    id: int
    name: str
    category_id: int
    photo_url: Optional[str] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    display_order: int
    candidates: List[CandidateOut] = []


class VotingData(BaseModel):
    """Everything the ballot page needs in one read."""
    categories: List[CategoryOut]
    voting_open: bool


class BallotProgress(BaseModel):
    voted_category_ids: List[int]
    total_categories: int
    complete: bool

    @property
    def remaining(self) -> int:
        return max(0, self.total_categories - len(self.voted_category_ids))


class BallotReceipt(ActionResult):
    """Result of casting one vote, with the completion signal."""
    voted_category_ids: List[int] = []
    voting_complete: bool = False
    student_name: Optional[str] = None


def get_voting_data(db: Session) -> VotingData:
    """Categories in ballot order with their candidates, plus the open flag."""
    categories = db.query(VotingCategory).options(
        selectinload(VotingCategory.candidates)
    ).order_by(VotingCategory.display_order, VotingCategory.id).all()

    return VotingData(
        categories=[
            CategoryOut(
                id=c.id,
                name=c.name,
                display_order=c.display_order,
                candidates=[
                    CandidateOut(id=cand.id, name=cand.name, category_id=cand.category_id,
                                 photo_url=cand.photo_url)
                    for cand in c.candidates
                ],
            )
            for c in categories
        ],
        voting_open=is_voting_open(db),
    )


def get_votes_for_student(db: Session, student_id: str) -> List[int]:
    """Ordered, distinct category ids the student has already voted in."""
    clean_id = normalize_student_id(student_id)
    rows = db.query(Vote.category_id).filter(
        Vote.student_id == clean_id
    ).distinct().order_by(Vote.category_id).all()
    return [row[0] for row in rows]


def ballot_progress(db: Session, student_id: str) -> BallotProgress:
    """How far through the ballot a student is."""
    voted = get_votes_for_student(db, student_id)
    total = db.query(VotingCategory).count()
    return BallotProgress(
        voted_category_ids=voted,
        total_categories=total,
        complete=total > 0 and len(voted) >= total,
    )


def submit_vote(db: Session, student_id: str, candidate_id: int, category_id: int) -> ActionResult:
    """
    Record one vote for a student in one category.

    Returns:
        ActionResult; CONFLICT when a vote already exists for the category,
        CLOSED when voting is not open.
    """
    if not student_id or not str(student_id).strip() or not candidate_id or not category_id:
        log_with_context(logger, "WARNING", "Vote submission missing parameters")
        return ActionResult.fail(ErrorKind.VALIDATION, "Missing required information for voting.")

    clean_id = normalize_student_id(student_id)
    log_context = {"student_id": clean_id, "category_id": category_id, "candidate_id": candidate_id}

    try:
        if not is_voting_open(db):
            log_with_context(logger, "INFO", "Vote rejected, voting closed", context=log_context)
            return ActionResult.fail(ErrorKind.CLOSED, "Voting is currently closed.")

        if not find_student_by_id(db, clean_id):
            return ActionResult.fail(ErrorKind.NOT_FOUND, "Student not found.")

        candidate = db.get(Candidate, candidate_id)
        if not candidate or candidate.category_id != category_id:
            return ActionResult.fail(ErrorKind.VALIDATION, "Invalid candidate for this category.")

        existing = db.query(Vote).filter(
            Vote.student_id == clean_id,
            Vote.category_id == category_id
        ).first()
        if existing:
            log_with_context(logger, "INFO", "Duplicate vote rejected", context=log_context)
            return ActionResult.fail(ErrorKind.CONFLICT, ALREADY_VOTED_MESSAGE)

        db.add(Vote(student_id=clean_id, candidate_id=candidate_id, category_id=category_id))
        db.commit()
    except IntegrityError:
        db.rollback()
        log_with_context(logger, "WARNING", "Concurrent duplicate vote rejected by store",
                         context=log_context)
        return ActionResult.fail(ErrorKind.CONFLICT, ALREADY_VOTED_MESSAGE)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to insert vote: {}".format(str(e)),
                         context=log_context)
        return ActionResult.fail(ErrorKind.TRANSIENT, "Failed to submit vote. Please try again.")

    log_with_context(logger, "INFO", "Vote recorded", context=log_context)
    return ActionResult.ok("Vote recorded.")


def mark_as_voted(db: Session, student_id: str) -> ActionResult:
    """Finalize a student's ballot. Idempotent."""
    clean_id = normalize_student_id(student_id)
    try:
        matched = set_has_voted(db, clean_id)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to mark student as voted: {}".format(str(e)),
                         context={"student_id": clean_id})
        return ActionResult.fail(ErrorKind.TRANSIENT, GENERIC_ERROR_MESSAGE)

    if not matched:
        return ActionResult.fail(ErrorKind.NOT_FOUND, "Student not found.")

    log_with_context(logger, "INFO", "Student marked as voted", context={"student_id": clean_id})
    return ActionResult.ok("Voting complete.")


def cast_vote(db: Session, student_id: str, candidate_id: int, category_id: int) -> BallotReceipt:
    """
    Submit a vote, then finalize the ballot if it was the last category.

    The receipt's ``voting_complete`` and ``student_name`` are the signal
    the confirmation view consumes.
    """
    result = submit_vote(db, student_id, candidate_id, category_id)
    if not result.success:
        return BallotReceipt.fail(result.kind, result.message)

    try:
        progress = ballot_progress(db, student_id)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to read ballot progress: {}".format(str(e)),
                         context={"student_id": normalize_student_id(student_id)})
        # The vote itself is stored; completion is re-detected on the next read
        return BallotReceipt.ok(result.message)

    if not progress.complete:
        return BallotReceipt.ok(result.message, voted_category_ids=progress.voted_category_ids)

    return _finalize(db, student_id, progress)


def finalize_if_complete(db: Session, student_id: str) -> BallotReceipt:
    """
    Finalize a resumed ballot whose last vote landed but whose finalization
    did not (e.g. the request died in between).
    """
    progress = ballot_progress(db, student_id)
    if not progress.complete:
        return BallotReceipt.fail(
            ErrorKind.VALIDATION,
            "Please vote in all categories before finishing. {} remaining.".format(progress.remaining),
            voted_category_ids=progress.voted_category_ids)

    return _finalize(db, student_id, progress)


def _finalize(db: Session, student_id: str, progress: BallotProgress) -> BallotReceipt:
    finalized = mark_as_voted(db, student_id)
    if not finalized.success:
        return BallotReceipt.fail(finalized.kind, finalized.message,
                                  voted_category_ids=progress.voted_category_ids)

    student = find_student_by_id(db, student_id)
    return BallotReceipt.ok(
        "Thank you for voting. Your ballot is complete.",
        voted_category_ids=progress.voted_category_ids,
        voting_complete=True,
        student_name=student.name if student else None,
    )
