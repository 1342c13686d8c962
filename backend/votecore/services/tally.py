"""
Tally Service - election results and turnout for the admin dashboard.

Every figure is computed from the raw students / votes / candidates tables.
There is no precomputed summary table to drift out of step with the votes,
so "has this student voted" always means ``students.has_voted`` and
"how many votes" always means a count over ``votes``.
"""

import time
from typing import Dict, List

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from votecore.models.student import Student
from votecore.models.vote import Vote
from votecore.models.voting_category import VotingCategory
from votecore.logging_config import get_logger, log_with_context

logger = get_logger("results")

NO_VOTE = "No Vote"


# ── Pydantic schemas ─────────────────────────────────────────

class TurnoutSummary(BaseModel):
    total_students: int
    voted_students: int
    turnout_percentage: int


class CandidateTally(BaseModel):
    candidate_id: int
    candidate_name: str
    vote_count: int
    position: int


class CategoryResult(BaseModel):
    category_id: int
    category_name: str
    total_votes: int
    candidates: List[CandidateTally]


class GroupTurnout(BaseModel):
    key: str
    total: int
    voted: int
    turnout: float


class ProgrammeLevelStats(BaseModel):
    programme_stats: List[GroupTurnout]
    level_stats: List[GroupTurnout]


class VoterSummaryRow(BaseModel):
    student_id: str
    student_name: str
    phone: str
    email: str
    programme: str
    level: str
    votes: Dict[str, str]


def turnout_summary(db: Session) -> TurnoutSummary:
    """Total electorate, students who finished voting, and rounded turnout."""
    total = db.query(func.count(Student.student_id)).scalar() or 0
    voted = db.query(func.count(Student.student_id)).filter(Student.has_voted.is_(True)).scalar() or 0
    percentage = round(voted / total * 100) if total > 0 else 0
    return TurnoutSummary(total_students=total, voted_students=voted, turnout_percentage=percentage)


def category_results(db: Session) -> List[CategoryResult]:
    """
    Per-category candidate vote counts, ranked.

    Candidates are ordered by votes DESC then name; ties share no position,
    positions are simply 1..n in that order.
    """
    start_time = time.time()

    counts = dict(
        db.query(Vote.candidate_id, func.count(Vote.id)).group_by(Vote.candidate_id).all()
    )

    categories = db.query(VotingCategory).options(
        joinedload(VotingCategory.candidates)
    ).order_by(VotingCategory.display_order, VotingCategory.id).all()

    results = []
    for category in categories:
        ranked = sorted(
            category.candidates,
            key=lambda c: (-counts.get(c.id, 0), c.name)
        )
        tallies = [
            CandidateTally(
                candidate_id=c.id,
                candidate_name=c.name,
                vote_count=counts.get(c.id, 0),
                position=position,
            )
            for position, c in enumerate(ranked, 1)
        ]
        results.append(CategoryResult(
            category_id=category.id,
            category_name=category.name,
            total_votes=sum(t.vote_count for t in tallies),
            candidates=tallies,
        ))

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Results computed for {} categories".format(len(results)),
        extra_data={"duration_ms": round(duration_ms, 2)})
    return results


def _level_sort_key(level: str):
    # Numeric levels first in numeric order, then anything else alphabetically
    try:
        return (0, int(level), level)
    except ValueError:
        return (1, 0, level)


def programme_level_stats(db: Session) -> ProgrammeLevelStats:
    """Turnout grouped by programme (alphabetical) and level (numeric)."""
    students = db.query(Student.programme, Student.level, Student.has_voted).all()

    programmes: Dict[str, List[int]] = {}
    levels: Dict[str, List[int]] = {}
    for programme, level, has_voted in students:
        if programme:
            bucket = programmes.setdefault(programme, [0, 0])
            bucket[0] += 1
            bucket[1] += 1 if has_voted else 0
        if level:
            bucket = levels.setdefault(str(level), [0, 0])
            bucket[0] += 1
            bucket[1] += 1 if has_voted else 0

    def to_rows(groups, keys):
        return [
            GroupTurnout(
                key=key,
                total=groups[key][0],
                voted=groups[key][1],
                turnout=(groups[key][1] / groups[key][0] * 100) if groups[key][0] > 0 else 0.0,
            )
            for key in keys
        ]

    return ProgrammeLevelStats(
        programme_stats=to_rows(programmes, sorted(programmes)),
        level_stats=to_rows(levels, sorted(levels, key=_level_sort_key)),
    )


def voted_students_summary(db: Session) -> List[VoterSummaryRow]:
    """
    One row per student who has finished voting, with their choice in each
    category ("No Vote" where none is recorded).
    """
    categories = db.query(VotingCategory).order_by(
        VotingCategory.display_order, VotingCategory.id
    ).all()
    names = [c.name for c in categories]

    students = db.query(Student).options(
        joinedload(Student.details),
        joinedload(Student.votes).joinedload(Vote.candidate),
        joinedload(Student.votes).joinedload(Vote.category),
    ).filter(Student.has_voted.is_(True)).order_by(Student.student_id).all()

    rows = []
    for student in students:
        choices = {name: NO_VOTE for name in names}
        for vote in student.votes:
            if vote.category and vote.candidate:
                choices[vote.category.name] = vote.candidate.name
        rows.append(VoterSummaryRow(
            student_id=student.student_id,
            student_name=student.name or "N/A",
            phone=student.phone or "N/A",
            email=student.details.email if student.details else "N/A",
            programme=student.programme or "N/A",
            level=student.level or "N/A",
            votes=choices,
        ))

    log_with_context(logger, "INFO", "Voter summary built for {} students".format(len(rows)))
    return rows
