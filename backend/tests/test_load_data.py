import json
from pathlib import Path

from load_data import load_seed
from votecore.models import Candidate, Student, VotingCategory, VotingStatus

SEED_FILE = Path(__file__).resolve().parent.parent / "election_seed.json"


def test_bundled_seed_loads(db):
    seed = json.loads(SEED_FILE.read_text())

    counts = load_seed(db, seed)

    assert counts["categories"] == db.query(VotingCategory).count() > 0
    assert counts["candidates"] == db.query(Candidate).count() > 0
    assert db.get(VotingStatus, 1).is_open is True


def test_reseeding_keeps_has_voted_and_normalizes_ids(db):
    seed = {
        "categories": [{"id": 1, "name": "Presidential"}],
        "candidates": [{"id": 11, "name": "Kwame Asante", "category_id": 1}],
        "students": [{"student_id": " 01200644D ", "name": "Ama", "phone": "0241234567",
                      "programme": "Computer Science", "level": 300}],
    }
    load_seed(db, seed)
    student = db.get(Student, "01200644d")
    student.has_voted = True
    db.commit()

    seed["students"][0]["name"] = "Ama Serwaa"
    load_seed(db, seed)

    student = db.get(Student, "01200644d", populate_existing=True)
    assert student.name == "Ama Serwaa"
    assert student.level == "300"
    assert student.has_voted is True
    assert db.get(VotingCategory, 1).display_order == 1
