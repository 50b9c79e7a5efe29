import json

import pytest

from progress_tree import ProgressTree, restore_progress_tree
from topics import PaperClassifier


def test_distinct_ids_count_once_each():
    tree = ProgressTree()
    ids = ["alg-1001", "alg-1002", "geo-1001", "stat-2001", "int-1003"]
    for question_id in ids:
        assert tree.add_attempt(question_id) is True

    assert tree.total_count() == len(ids)
    assert tree.paper_count("paper1") + tree.paper_count("paper2") == len(ids)


def test_repeat_attempt_only_merges_notes():
    tree = ProgressTree()
    tree.add_attempt("alg-1001", time_taken_seconds=90, notes="first", completed_at="2024-01-01T10:00:00+00:00")

    assert tree.add_attempt("alg-1001", notes="second") is False

    item = tree.tree["paper1"]["topics"]["alg"]["items"]["alg-1001"]
    assert item == {"completedAt": "2024-01-01T10:00:00+00:00", "timeTakenSeconds": 90, "notes": "second"}
    assert tree.total_count() == 1
    assert tree.topic_count("alg") == 1


def test_new_item_defaults():
    tree = ProgressTree()
    tree.add_attempt("stat-1001")

    item = tree.tree["paper2"]["topics"]["stat"]["items"]["stat-1001"]
    assert item["timeTakenSeconds"] is None
    assert item["notes"] == ""
    assert item["completedAt"]


def test_has_survives_metadata_updates():
    tree = ProgressTree()
    assert tree.has("alg-1001") is False
    tree.add_attempt("alg-1001")
    assert tree.has("alg-1001")
    tree.add_attempt("alg-1001", notes="again")
    tree.add_attempt("alg-1001", time_taken_seconds=30)
    assert tree.has("alg-1001")


@pytest.mark.parametrize("question_id", [None, ""])
def test_falsy_id_is_rejected(question_id):
    tree = ProgressTree()
    assert tree.add_attempt(question_id) is False
    assert tree.has(question_id) is False
    assert tree.total_count() == 0


def test_papers_follow_topic_mapping():
    tree = ProgressTree()
    tree.add_attempt("alg-1001")
    tree.add_attempt("geo-1001")

    assert "alg-1001" in tree.tree["paper1"]["topics"]["alg"]["items"]
    assert "geo-1001" in tree.tree["paper2"]["topics"]["geo"]["items"]
    assert tree.totals == {"all": 2, "paper1": 1, "paper2": 1, "topics": {"alg": 1, "geo": 1}}


def test_id_without_prefix_lands_in_unknown():
    tree = ProgressTree()
    tree.add_attempt("-17")
    assert tree.topic_count("unknown") == 1
    assert tree.paper_count("paper2") == 1


def test_custom_classifier_moves_topic():
    classifier = PaperClassifier({"geo": "paper1"})
    tree = ProgressTree(classifier=classifier)
    tree.add_attempt("geo-1001")
    tree.add_attempt("alg-1001")

    assert tree.paper_count("paper1") == 1
    # alg is not in this mapping, so it falls back to paper2
    assert tree.paper_count("paper2") == 1


def test_attempts_array_newest_first_with_stable_ties():
    tree = ProgressTree()
    tree.add_attempt("alg-1001", completed_at="2024-01-01T00:00:00+00:00")
    tree.add_attempt("alg-1002", completed_at="2024-03-01T00:00:00+00:00")
    tree.add_attempt("alg-1003", completed_at="2024-03-01T00:00:00+00:00")
    tree.add_attempt("alg-1004", completed_at="not a date")

    order = [record["questionId"] for record in tree.to_attempts_array()]
    assert order == ["alg-1002", "alg-1003", "alg-1001", "alg-1004"]


def test_attempts_array_shape():
    tree = ProgressTree()
    tree.add_attempt("geo-1001", time_taken_seconds=40, notes="circle", completed_at="2024-02-02T00:00:00Z")

    assert tree.to_attempts_array() == [{
        "questionId": "geo-1001",
        "completedAt": "2024-02-02T00:00:00Z",
        "timeTakenSeconds": 40,
        "notes": "circle",
        "topic": "geo",
        "paper": "paper2",
    }]


def test_restore_round_trip_keeps_totals_and_membership():
    tree = ProgressTree()
    ids = ["alg-1001", "seq-1002", "geo-1003", "prob-2001"]
    for question_id in ids:
        tree.add_attempt(question_id, time_taken_seconds=10)

    # through real JSON, as it sits in the database
    restored = restore_progress_tree(json.loads(json.dumps(tree.to_json())))

    assert restored.totals == tree.totals
    assert all(restored.has(question_id) for question_id in ids)
    assert not restored.has("alg-9999")


def test_to_json_is_a_copy():
    tree = ProgressTree()
    tree.add_attempt("alg-1001")
    snapshot = tree.to_json()
    snapshot["totals"]["all"] = 99
    assert tree.total_count() == 1


def test_reingesting_flat_projection_reproduces_totals():
    tree = ProgressTree()
    for question_id in ["alg-1001", "alg-1002", "geo-1001", "stat-1001", "-5"]:
        tree.add_attempt(question_id)

    rebuilt = ProgressTree.from_attempts(tree.to_attempts_array())
    assert rebuilt.totals == tree.totals


def test_from_attempts_accepts_legacy_keys():
    attempts = [
        {"questionId": "alg-1001", "timeTaken": 75, "timestamp": "2023-09-01T08:00:00Z"},
        {"questionId": "alg-1001", "notes": "redo"},
        {"questionId": "geo-1001", "timeTakenSeconds": 20, "lastUpdatedAt": "2023-09-02T08:00:00Z"},
        {"notes": "no id"},
    ]
    tree = ProgressTree.from_attempts(attempts)

    item = tree.tree["paper1"]["topics"]["alg"]["items"]["alg-1001"]
    assert item["timeTakenSeconds"] == 75
    assert item["completedAt"] == "2023-09-01T08:00:00Z"
    assert item["notes"] == "redo"
    assert tree.total_count() == 2


@pytest.mark.parametrize("raw", [
    None,
    "garbage",
    [],
    {},
    {"tree": {}, "totals": {}},
    {"tree": {"paper1": {"topics": {}}}, "totals": {"all": 0, "paper1": 0, "paper2": 0, "topics": {}}},
    {"tree": {"paper1": {"topics": []}, "paper2": {"topics": {}}}, "totals": {"all": 0}},
])
def test_restore_falls_back_to_empty_tree(raw):
    restored = restore_progress_tree(raw)
    assert restored.total_count() == 0
    assert restored.tree == {"paper1": {"topics": {}}, "paper2": {"topics": {}}}
