"""
Data Loader Script - seeds the election reference data into the database.

Reads a JSON file with students, voting categories and candidates and
upserts them by key, so it can be re-run safely before the election.
Existing students keep their has_voted flag.

Usage:
    python load_data.py                        # Uses ./election_seed.json
    python load_data.py path/to/seed.json      # Custom seed file

Expected file shape:
    {
      "categories": [{"id": 1, "name": "Presidential", "display_order": 1}],
      "candidates": [{"id": 1, "name": "Ama Mensah", "category_id": 1}],
      "students":   [{"student_id": "01200644D", "name": "...", "phone": "...",
                      "programme": "...", "level": "100"}]
    }
"""

import json
import os
import sys

from votecore.database import SessionLocal, create_tables
from votecore.models import Candidate, Student, VotingCategory
from votecore.services.identity import normalize_student_id
from votecore.services.voting_gate import get_voting_status


def load_seed(db, seed: dict) -> dict:
    """Upsert categories, candidates and students. Returns per-table counts."""
    counts = {"categories": 0, "candidates": 0, "students": 0}

    for item in seed.get("categories", []):
        category = db.get(VotingCategory, item["id"]) or VotingCategory(id=item["id"])
        category.name = item["name"]
        category.display_order = item.get("display_order", item["id"])
        db.add(category)
        counts["categories"] += 1

    for item in seed.get("candidates", []):
        candidate = db.get(Candidate, item["id"]) or Candidate(id=item["id"])
        candidate.name = item["name"]
        candidate.category_id = item["category_id"]
        candidate.photo_url = item.get("photo_url")
        db.add(candidate)
        counts["candidates"] += 1

    for item in seed.get("students", []):
        student_id = normalize_student_id(item["student_id"])
        student = db.get(Student, student_id) or Student(student_id=student_id, has_voted=False)
        student.name = item.get("name")
        student.phone = item.get("phone")
        student.programme = item.get("programme")
        student.level = str(item["level"]) if item.get("level") is not None else None
        db.add(student)
        counts["students"] += 1

    db.commit()
    get_voting_status(db)
    return counts


def main():
    seed_file = sys.argv[1] if len(sys.argv) > 1 else os.getenv("SEED_FILE", "election_seed.json")

    if not os.path.exists(seed_file):
        print(f"Error: Could not find {seed_file}")
        sys.exit(1)

    print(f"Loading seed data from: {seed_file}")
    with open(seed_file, 'r') as f:
        seed = json.load(f)

    create_tables()
    db = SessionLocal()
    try:
        counts = load_seed(db, seed)
    finally:
        db.close()

    print("=" * 60)
    print("SEED SUMMARY")
    print("=" * 60)
    print(f"  Categories: {counts['categories']}")
    print(f"  Candidates: {counts['candidates']}")
    print(f"  Students:   {counts['students']}")
    print("=" * 60)


if __name__ == "__main__":
    main()
