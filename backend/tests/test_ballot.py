import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from votecore.database import utcnow
from votecore.models import Student, Vote
from votecore.services.ballot import (
    ALREADY_VOTED_MESSAGE,
    ballot_progress, cast_vote, finalize_if_complete, get_votes_for_student,
    get_voting_data, mark_as_voted, submit_vote,
)
from votecore.services.outcomes import ErrorKind
from votecore.services.voting_gate import is_voting_open, set_voting_open

from conftest import STUDENT_ID


def test_voting_data_in_ballot_order(db, election):
    data = get_voting_data(db)

    assert data.voting_open is True
    assert [c.name for c in data.categories] == ["Presidential", "Vice President", "General Secretary"]
    assert [c.id for c in data.categories[0].candidates] == [11, 12]


def test_submit_vote_records_one_row(db, election):
    result = submit_vote(db, STUDENT_ID, 11, 1)

    assert result.success
    vote = db.query(Vote).one()
    assert (vote.student_id, vote.candidate_id, vote.category_id) == ("01200644d", 11, 1)


def test_second_vote_in_same_category_conflicts(db, election):
    assert submit_vote(db, STUDENT_ID, 11, 1).success

    result = submit_vote(db, STUDENT_ID, 12, 1)

    assert result.kind == ErrorKind.CONFLICT
    assert result.message == ALREADY_VOTED_MESSAGE
    assert db.query(Vote).count() == 1


@pytest.mark.parametrize("student_id, candidate_id, category_id", [
    ("", 11, 1),
    (STUDENT_ID, 0, 1),
    (STUDENT_ID, 11, None),
])
def test_missing_parameters_are_rejected(db, election, student_id, candidate_id, category_id):
    result = submit_vote(db, student_id, candidate_id, category_id)
    assert result.kind == ErrorKind.VALIDATION
    assert result.message == "Missing required information for voting."


def test_candidate_must_belong_to_category(db, election):
    result = submit_vote(db, STUDENT_ID, 21, 1)
    assert result.kind == ErrorKind.VALIDATION
    assert db.query(Vote).count() == 0


def test_unknown_student_cannot_vote(db, election):
    assert submit_vote(db, "99999999X", 11, 1).kind == ErrorKind.NOT_FOUND


def test_closed_voting_rejects_then_reopens(db, election):
    set_voting_open(db, False)
    assert is_voting_open(db) is False

    closed = submit_vote(db, STUDENT_ID, 11, 1)
    assert closed.kind == ErrorKind.CLOSED
    assert closed.message == "Voting is currently closed."

    status = set_voting_open(db, True)
    assert status.version == 3
    assert submit_vote(db, STUDENT_ID, 11, 1).success


def test_missing_status_row_means_open(db):
    assert is_voting_open(db) is True


def test_store_constraint_decides_a_lost_race(db, election):
    # Another request inserts the same (student, category) between the
    # duplicate check and this request's commit.
    def competing_insert(session, flush_context, instances):
        if any(isinstance(obj, Vote) for obj in session.new):
            session.connection().execute(Vote.__table__.insert().values(
                student_id="01200644d", candidate_id=12, category_id=1, created_at=utcnow()))

    event.listen(db, "before_flush", competing_insert, once=True)

    result = submit_vote(db, STUDENT_ID, 11, 1)

    assert result.kind == ErrorKind.CONFLICT
    assert result.message == ALREADY_VOTED_MESSAGE


def test_unique_constraint_on_student_and_category(db, election):
    db.add(Vote(student_id="01200644d", candidate_id=11, category_id=1))
    db.commit()
    db.add(Vote(student_id="01200644d", candidate_id=12, category_id=1))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_votes_for_student_are_distinct_and_ordered(db, election):
    submit_vote(db, STUDENT_ID, 31, 3)
    submit_vote(db, STUDENT_ID, 11, 1)

    assert get_votes_for_student(db, "01200644D") == [1, 3]
    progress = ballot_progress(db, STUDENT_ID)
    assert progress.total_categories == 3
    assert progress.remaining == 1
    assert progress.complete is False


def test_last_category_finalizes_ballot(db, election):
    first = cast_vote(db, STUDENT_ID, 11, 1)
    assert first.success and not first.voting_complete
    assert cast_vote(db, STUDENT_ID, 22, 2).voting_complete is False

    last = cast_vote(db, STUDENT_ID, 31, 3)

    assert last.success
    assert last.voting_complete is True
    assert last.student_name == "Ama Serwaa"
    assert last.voted_category_ids == [1, 2, 3]
    student = db.get(Student, "01200644d")
    db.refresh(student)
    assert student.has_voted is True


def test_failed_vote_does_not_finalize(db, election):
    cast_vote(db, STUDENT_ID, 11, 1)
    receipt = cast_vote(db, STUDENT_ID, 12, 1)

    assert receipt.kind == ErrorKind.CONFLICT
    assert receipt.voting_complete is False


def test_finalize_if_complete_needs_every_category(db, election):
    submit_vote(db, STUDENT_ID, 11, 1)

    pending = finalize_if_complete(db, STUDENT_ID)
    assert pending.kind == ErrorKind.VALIDATION
    assert "2 remaining" in pending.message

    submit_vote(db, STUDENT_ID, 21, 2)
    submit_vote(db, STUDENT_ID, 31, 3)
    assert finalize_if_complete(db, STUDENT_ID).voting_complete is True


def test_mark_as_voted_is_idempotent(db, election):
    assert mark_as_voted(db, STUDENT_ID).success
    assert mark_as_voted(db, STUDENT_ID).success
    assert mark_as_voted(db, "99999999X").kind == ErrorKind.NOT_FOUND
