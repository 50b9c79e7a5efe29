import json

import pytest

from errors import ConflictError, InvalidInputError, NotFoundError
from user_store import MAX_NOTES_LENGTH, UserStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "database.json"


@pytest.fixture
def users(db_path, clock):
    return UserStore(str(db_path), "test-encryption-key", clock=clock)


@pytest.fixture
def user(users):
    return users.create_user("Learner@Example.com", name="Ada", email_verified=True)


def test_email_is_encrypted_at_rest(users, user, db_path):
    raw = db_path.read_text(encoding="utf-8")
    assert "learner@example.com" not in raw.lower()
    assert users.decrypt_email(user["email"]) == "learner@example.com"


def test_find_by_email_ignores_case_and_spaces(users, user):
    assert users.find_user_by_email("  LEARNER@example.com ")["id"] == user["id"]
    assert users.find_user_by_email("someone@example.com") is None


def test_new_user_has_empty_progress(users, user):
    stored = users.find_user_by_id(user["id"])
    assert stored["progress"]["attempts"] == []
    assert stored["progress"]["progressTree"]["totals"]["all"] == 0
    assert stored["favourites"] == []
    assert stored["marketingConsent"] is False


def test_update_missing_user_raises(users):
    with pytest.raises(NotFoundError):
        users.update_user("missing", {"name": "x"})


def test_first_attempt_creates_record_and_tree_leaf(users, user, clock):
    attempt, tree = users.add_or_update_attempt(
        user["id"], "alg-1001", time_taken_seconds=120, notes="tricky", parentTopic="algebra", unknownField="x",
    )

    assert attempt["completedAt"] == clock.now.isoformat()
    assert attempt["parentTopic"] == "algebra"
    assert "unknownField" not in attempt
    assert tree.has("alg-1001")
    assert tree.totals["paper1"] == 1

    stored = users.find_user_by_id(user["id"])
    assert stored["stats"]["questionsAnswered"] == 1
    assert stored["stats"]["topicsStudied"] == ["algebra"]
    assert stored["progress"]["progressTree"]["totals"]["all"] == 1


def test_resubmission_keeps_completed_at(users, user, clock):
    first, _ = users.add_or_update_attempt(user["id"], "alg-1001", time_taken_seconds=120, notes="first")
    clock.advance(hours=2)
    second, tree = users.add_or_update_attempt(user["id"], "alg-1001", notes="second")

    assert second["completedAt"] == first["completedAt"]
    assert second["lastUpdatedAt"] == clock.now.isoformat()
    assert second["timeTakenSeconds"] == 120
    assert second["notes"] == "second"
    assert tree.total_count() == 1
    assert users.find_user_by_id(user["id"])["stats"]["questionsAnswered"] == 1


def test_notes_are_trimmed(users, user):
    attempt, _ = users.add_or_update_attempt(user["id"], "alg-1001", notes="x" * (MAX_NOTES_LENGTH + 50))
    assert len(attempt["notes"]) == MAX_NOTES_LENGTH


def test_empty_question_id_rejected(users, user):
    with pytest.raises(InvalidInputError):
        users.add_or_update_attempt(user["id"], "")


def test_attempt_for_missing_user(users):
    with pytest.raises(NotFoundError):
        users.add_or_update_attempt("missing", "alg-1001")


def test_has_completed(users, user):
    assert users.has_completed(user["id"], "alg-1001") is False
    users.add_or_update_attempt(user["id"], "alg-1001")
    assert users.has_completed(user["id"], "alg-1001") is True
    assert users.has_completed("missing", "alg-1001") is False


def test_attempt_listing_and_stats(users, user, clock):
    users.add_or_update_attempt(user["id"], "alg-1001", time_taken_seconds=60, parentTopic="algebra", difficulty="easy")
    clock.advance(minutes=5)
    users.add_or_update_attempt(user["id"], "stat-1001", time_taken_seconds=90, parentTopic="statistics",
                                difficulty="hard", questionType="state")
    clock.advance(minutes=5)
    users.add_or_update_attempt(user["id"], "alg-1002", parentTopic="algebra")

    assert [a["questionId"] for a in users.get_attempts(user["id"])] == ["alg-1002", "stat-1001", "alg-1001"]
    assert [a["questionId"] for a in users.get_attempts(user["id"], topic="algebra")] == ["alg-1002", "alg-1001"]
    assert [a["questionId"] for a in users.get_attempts(user["id"], limit=1, offset=1)] == ["stat-1001"]

    stats = users.get_attempt_stats(user["id"])
    assert stats["totalAttempts"] == 3
    assert stats["topicsCount"] == 2
    assert stats["avgTimeSeconds"] == 75.0
    assert stats["easyCount"] == 1
    assert stats["hardCount"] == 1
    assert stats["stateCount"] == 1


def test_update_attempt_notes(users, user):
    users.add_or_update_attempt(user["id"], "alg-1001", notes="before")
    updated = users.update_attempt_notes(user["id"], "alg-1001", "after")

    assert updated["notes"] == "after"
    tree = users.get_progress_tree(user["id"])
    assert tree.tree["paper1"]["topics"]["alg"]["items"]["alg-1001"]["notes"] == "after"
    with pytest.raises(NotFoundError):
        users.update_attempt_notes(user["id"], "alg-9999", "nope")


def test_legacy_document_gets_tree_backfilled(db_path, clock):
    db_path.write_text(json.dumps({
        "users": [{
            "id": "legacy-user",
            "email": "",
            "progress": {"attempts": [
                {"questionId": "alg-1001", "completedAt": "2023-01-01T00:00:00+00:00", "timeTakenSeconds": 30},
                {"questionId": "geo-1001", "completedAt": "2023-01-02T00:00:00+00:00"},
            ]},
        }],
    }), encoding="utf-8")
    users = UserStore(str(db_path), "test-encryption-key", clock=clock)

    tree = users.get_progress_tree("legacy-user")
    assert tree.totals == {"all": 2, "paper1": 1, "paper2": 1, "topics": {"alg": 1, "geo": 1}}

    stored = json.loads(db_path.read_text(encoding="utf-8"))
    assert stored["users"][0]["progress"]["progressTree"]["totals"]["all"] == 2
    assert stored["users"][0]["favourites"] == []
    assert stored["verificationCodes"] == []


def test_damaged_tree_is_rebuilt_from_attempts(db_path, clock):
    db_path.write_text(json.dumps({
        "users": [{
            "id": "damaged-user",
            "email": "",
            "progress": {
                "attempts": [
                    {"questionId": "alg-1001", "completedAt": "2023-01-01T00:00:00+00:00"},
                    {"questionId": "geo-1001", "completedAt": "2023-01-02T00:00:00+00:00"},
                ],
                "progressTree": {"tree": "broken", "totals": {"all": 0}},
            },
        }],
    }), encoding="utf-8")
    users = UserStore(str(db_path), "test-encryption-key", clock=clock)

    assert users.get_progress_tree("damaged-user").totals["all"] == 2
    _, tree = users.add_or_update_attempt("damaged-user", "alg-1002")
    assert tree.totals == {"all": 3, "paper1": 2, "paper2": 1, "topics": {"alg": 2, "geo": 1}}
    assert users.has_completed("damaged-user", "geo-1001")


def test_reading_progress_does_not_rewrite_the_file(users, user, monkeypatch):
    users.add_or_update_attempt(user["id"], "alg-1001")

    def no_writes(mutator):
        raise AssertionError("progress read should not write")

    monkeypatch.setattr(users.store, "update", no_writes)
    assert users.get_progress_tree(user["id"]).totals["all"] == 1


def test_duplicate_email_is_a_conflict(users, user):
    with pytest.raises(ConflictError):
        users.create_user(" LEARNER@example.com", name="Someone else")
    assert len(users.store.read()["users"]) == 1


def test_favourites(users, user, clock):
    entry, created = users.add_favourite(user["id"], "alg-1001", parentTopic="algebra", questionName="Q2")
    assert created is True
    assert entry["questionName"] == "Q2"

    again, created = users.add_favourite(user["id"], "alg-1001", parentTopic="other")
    assert created is False
    assert again["id"] == entry["id"]

    clock.advance(minutes=1)
    users.add_favourite(user["id"], "alg-1002", parentTopic="algebra")
    users.add_favourite(user["id"], "stat-1001", parentTopic="statistics")

    assert users.is_favourite(user["id"], "alg-1001")
    assert users.list_favourites(user["id"])[-1]["questionId"] == "alg-1001"
    assert users.favourite_stats_by_topic(user["id"]) == [
        {"parentTopic": "algebra", "count": 2},
        {"parentTopic": "statistics", "count": 1},
    ]

    assert users.remove_favourite(user["id"], "alg-1001") is True
    assert users.remove_favourite(user["id"], "alg-1001") is False
    assert not users.is_favourite(user["id"], "alg-1001")


def test_export_and_delete(users, user):
    users.add_or_update_attempt(user["id"], "alg-1001")

    exported = users.export_user_data(user["id"])
    assert exported["email"] == "learner@example.com"
    assert "passwordHash" not in exported
    assert exported["progress"]["attempts"][0]["questionId"] == "alg-1001"

    assert users.delete_user_data(user["id"]) is True
    assert users.find_user_by_id(user["id"]) is None
    assert users.delete_user_data(user["id"]) is False


def test_consent_update(users, user, clock):
    clock.advance(days=1)
    updated = users.update_consent(user["id"], True, "2.0")
    assert updated["marketingConsent"] is True
    assert updated["consentVersion"] == "2.0"
    assert updated["consentDate"] == clock.now.isoformat()


def test_retention_window(users, user, clock):
    assert users.get_users_for_retention(30) == []
    clock.advance(days=31)
    assert [u["id"] for u in users.get_users_for_retention(30)] == [user["id"]]
    users.update_last_login(user["id"])
    assert users.get_users_for_retention(30) == []
