import pytest
from fastapi.testclient import TestClient

from votecore.main import app

from conftest import STUDENT_ID, STUDENT_PHONE, latest_code

ADMIN = {"X-Admin-Token": "test-admin-token"}


@pytest.fixture
def client(db, election):
    with TestClient(app) as test_client:
        yield test_client


def verify(client, db, student_id=STUDENT_ID, phone=STUDENT_PHONE):
    """Walk a fresh session through ID, phone and OTP; return voter headers."""
    created = client.post("/api/verification/sessions")
    assert created.status_code == 201
    session_id = created.json()["session_id"]
    url = "/api/verification/sessions/{}".format(session_id)

    assert client.post(url + "/student-id", json={"student_id": student_id}).status_code == 200
    assert client.post(url + "/phone", json={"phone_number": phone}).status_code == 200
    response = client.post(url + "/otp", json={"code": latest_code(db, student_id)})
    assert response.status_code == 200
    assert response.json()["step"] == "success"
    return {"X-Voter-Session": session_id}


def ready_to_vote(client, db, email="ama@example.com"):
    """Verify, then complete the details step the ballot requires."""
    headers = verify(client, db)
    saved = client.post("/api/students/me/details", json={"email": email}, headers=headers)
    assert saved.status_code == 200
    return headers


def test_health(client):
    assert client.get("/health").status_code == 200


def test_request_id_is_echoed_or_generated(client):
    assert client.get("/health", headers={"X-Request-ID": "req-123"}).headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_verification_steps_over_http(client, db):
    session_id = client.post("/api/verification/sessions").json()["session_id"]
    url = "/api/verification/sessions/{}".format(session_id)

    unknown = client.post(url + "/student-id", json={"student_id": "99999999X"})
    assert unknown.status_code == 404

    accepted = client.post(url + "/student-id", json={"student_id": "01200644D"})
    assert accepted.json()["masked_phone"] == "024******7"
    assert client.get(url).json()["step"] == "phone-verification"

    assert client.post(url + "/phone", json={"phone_number": "0200000000"}).status_code == 400
    assert client.post(url + "/phone", json={"phone_number": "024 123 4567"}).status_code == 200

    resend = client.post(url + "/resend")
    assert resend.status_code == 429
    assert resend.json()["retry_after"] > 0

    wrong = client.post(url + "/otp", json={"code": "000000"})
    assert wrong.status_code == 400
    assert client.get(url).json()["step"] == "sms-otp"


def test_unknown_session_is_404(client):
    assert client.get("/api/verification/sessions/does-not-exist").status_code == 404


def test_ballot_requires_verified_session(client):
    assert client.get("/api/ballot").status_code == 401

    session_id = client.post("/api/verification/sessions").json()["session_id"]
    assert client.get("/api/ballot", headers={"X-Voter-Session": session_id}).status_code == 403


def test_full_ballot_flow(client, db):
    headers = ready_to_vote(client, db)

    ballot = client.get("/api/ballot", headers=headers).json()
    assert ballot["voting_open"] is True
    assert len(ballot["categories"]) == 3
    assert ballot["voted_category_ids"] == []

    assert client.get("/api/ballot/confirmation", headers=headers).status_code == 404

    first = client.post("/api/ballot/votes", json={"candidate_id": 11, "category_id": 1}, headers=headers)
    assert first.status_code == 200
    assert first.json()["voting_complete"] is False

    duplicate = client.post("/api/ballot/votes", json={"candidate_id": 12, "category_id": 1}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "You have already voted in this category."

    client.post("/api/ballot/votes", json={"candidate_id": 21, "category_id": 2}, headers=headers)
    last = client.post("/api/ballot/votes", json={"candidate_id": 32, "category_id": 3}, headers=headers)
    assert last.json()["voting_complete"] is True
    assert last.json()["student_name"] == "Ama Serwaa"

    confirmation = client.get("/api/ballot/confirmation", headers=headers).json()
    assert confirmation == {"voting_complete": True, "student_name": "Ama Serwaa"}

    # A finished voter cannot start over
    session_id = client.post("/api/verification/sessions").json()["session_id"]
    again = client.post("/api/verification/sessions/{}/student-id".format(session_id),
                        json={"student_id": STUDENT_ID})
    assert again.status_code == 409


def test_student_details_once(client, db):
    headers = verify(client, db)

    profile = client.get("/api/students/me", headers=headers).json()
    assert profile["student"]["name"] == "Ama Serwaa"

    assert client.post("/api/students/email-check", json={"email": "ama@example.com"},
                       headers=headers).status_code == 200
    assert client.post("/api/students/me/details", json={"email": "ama@example.com"},
                       headers=headers).status_code == 200
    assert client.post("/api/students/me/details", json={"email": "ama2@example.com"},
                       headers=headers).status_code == 409


def test_admin_requires_token(client):
    assert client.get("/api/admin/stats").status_code == 401
    assert client.get("/api/admin/stats", headers={"X-Admin-Token": "wrong"}).status_code == 401
    assert client.get("/api/admin/stats", headers=ADMIN).json()["total_students"] == 4


def test_admin_unconfigured_is_503(client, monkeypatch):
    from votecore import config
    monkeypatch.setattr(config, "ADMIN_TOKEN", None)
    assert client.get("/api/admin/stats", headers=ADMIN).status_code == 503


def test_closing_voting_blocks_votes(client, db):
    headers = ready_to_vote(client, db)

    closed = client.put("/api/admin/voting-status", json={"is_open": False}, headers=ADMIN)
    assert closed.json()["is_open"] is False

    vote = client.post("/api/ballot/votes", json={"candidate_id": 11, "category_id": 1}, headers=headers)
    assert vote.status_code == 403
    assert vote.json()["message"] == "Voting is currently closed."

    client.put("/api/admin/voting-status", json={"is_open": True}, headers=ADMIN)
    vote = client.post("/api/ballot/votes", json={"candidate_id": 11, "category_id": 1}, headers=headers)
    assert vote.status_code == 200


def test_admin_results_and_purge(client, db):
    headers = ready_to_vote(client, db)
    client.post("/api/ballot/votes", json={"candidate_id": 12, "category_id": 1}, headers=headers)

    results = client.get("/api/admin/results", headers=ADMIN).json()["results"]
    presidential = results[0]
    assert presidential["candidates"][0]["candidate_name"] == "Abena Owusu"
    assert presidential["candidates"][0]["vote_count"] == 1

    assert client.post("/api/admin/otps/purge", headers=ADMIN).json() == {"purged": 0}


def test_ballot_requires_completed_details(client, db):
    headers = verify(client, db)

    refused = client.post("/api/ballot/votes", json={"candidate_id": 11, "category_id": 1}, headers=headers)
    assert refused.status_code == 403
    assert refused.json()["detail"] == "Please complete your details before voting."
    assert client.get("/api/ballot", headers=headers).status_code == 403
    assert client.post("/api/ballot/finish", headers=headers).status_code == 403

    client.post("/api/students/me/details", json={"email": "ama@example.com"}, headers=headers)

    accepted = client.post("/api/ballot/votes", json={"candidate_id": 11, "category_id": 1}, headers=headers)
    assert accepted.status_code == 200


def test_returning_voter_with_saved_details_goes_straight_to_ballot(client, db, monkeypatch):
    from votecore import config
    monkeypatch.setattr(config, "OTP_COOLDOWN_SECONDS", 0)
    ready_to_vote(client, db)

    # A new session for the same student, details already on file
    headers = verify(client, db)
    assert client.get("/api/ballot", headers=headers).status_code == 200
