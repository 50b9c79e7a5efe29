import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

SAMPLE_QUESTIONS = {
    "algebra.json": [
        {
            "id": "alg-1001",
            "name": "2019 P1 Question 2",
            "topic": "algebra",
            "level": "lc",
            "difficulty": 1,
            "timeLimitMinute": 10,
            "questionTifUrl": "src/assets/questions/algebra/questions/alg-1001.png",
            "solutionTifUrl": "src/assets/questions/algebra/solutions/alg-1001.png",
        },
        {
            "id": "alg-1002",
            "name": "2016 P1 Question 4",
            "topic": ["algebra", "functions"],
            "level": "lc",
            "difficulty": 2,
            "timeLimitMinute": 25,
        },
    ],
    "statistics.json": [
        {
            "id": "stat-1001",
            "name": "2021 P2 Question 1",
            "topic": "statistics",
            "level": "lc",
            "difficulty": 1,
            "timeLimitMinute": 8,
        },
        {
            "id": "stat-2003",
            "name": "Sample Question 3",
            "topic": "statistics",
            "level": "hl",
            "difficulty": 3,
            "timeLimitMinute": 20,
        },
    ],
}


class FakeClock:
    """Settable clock for the time-dependent services."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingMailer:
    """Stands in for Mailer; keeps what would have been sent."""

    def __init__(self):
        self.verification_emails = []
        self.contact_messages = []

    def send_verification_email(self, email, code, name=""):
        self.verification_emails.append({"email": email, "code": code, "name": name})
        return {"skipped": False}

    def send_contact_email(self, name, from_email, subject, message_text):
        self.contact_messages.append({
            "name": name, "from_email": from_email, "subject": subject, "message": message_text,
        })
        return {"skipped": False}

    def last_code(self):
        return self.verification_emails[-1]["code"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def questions_dir(tmp_path):
    directory = tmp_path / "question-pairs"
    directory.mkdir()
    for filename, questions in SAMPLE_QUESTIONS.items():
        (directory / filename).write_text(json.dumps(questions), encoding="utf-8")
    return directory


@pytest.fixture
def settings(tmp_path, questions_dir):
    return Settings(
        database_path=str(tmp_path / "database.json"),
        questions_dir=str(questions_dir),
        encryption_key="test-encryption-key",
        jwt_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        session_secret="test-session-secret",
    )


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(settings, mailer):
    application = create_app(settings)
    application.state.mailer = mailer
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def logged_in_client(client):
    """Client holding a session for a fresh password account."""
    response = client.post(
        "/api/user-auth/signup",
        json={"email": "learner@example.com", "password": "correct-horse", "firstName": "Ada"},
    )
    assert response.status_code == 201
    return client
