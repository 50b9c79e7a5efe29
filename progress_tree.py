"""
Hierarchical completion tracking for a single user.

    root
     ├─ paper1
     │    └─ topics: { alg: { items: { 'alg-1001': {completedAt, timeTakenSeconds, notes} } } }
     └─ paper2
          └─ topics: { ... }

Totals are cached so progress bars never rescan the attempt history.
"""
import copy
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from topics import PAPER1, PAPER2, PAPERS, PaperClassifier

TREE_VERSION = 1

_default_classifier = PaperClassifier.default_classifier()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _timestamp(value) -> float:
    """Sort key for completedAt values; missing or unparseable means epoch zero."""
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _empty_tree() -> dict:
    return {PAPER1: {"topics": {}}, PAPER2: {"topics": {}}}


def _empty_totals() -> dict:
    return {"all": 0, PAPER1: 0, PAPER2: 0, "topics": {}}


class ProgressTree:

    def __init__(self, data: Optional[dict] = None, classifier: Optional[PaperClassifier] = None):
        self.classifier = classifier or _default_classifier
        if data and data.get("tree") and data.get("totals"):
            self.version = data.get("version") or TREE_VERSION
            self.tree = copy.deepcopy(data["tree"])
            self.totals = copy.deepcopy(data["totals"])
        else:
            self.version = TREE_VERSION
            self.tree = _empty_tree()
            self.totals = _empty_totals()

    @classmethod
    def from_attempts(cls, attempts: Optional[Iterable[dict]],
                      classifier: Optional[PaperClassifier] = None) -> "ProgressTree":
        """Backfill a tree from a legacy flat attempt list, replaying in order."""
        tree = cls(classifier=classifier)
        for attempt in attempts or []:
            time_taken = attempt.get("timeTakenSeconds")
            if time_taken is None:
                time_taken = attempt.get("timeTaken")
            tree.add_attempt(
                attempt.get("questionId"),
                time_taken_seconds=time_taken,
                notes=attempt.get("notes"),
                completed_at=attempt.get("completedAt") or attempt.get("timestamp") or attempt.get("lastUpdatedAt"),
            )
        return tree

    def _topic_node(self, question_id: str, create: bool = False):
        paper, topic = self.classifier.locate(question_id)
        topics = self.tree[paper]["topics"]
        if topic not in topics and create:
            topics[topic] = {"items": {}}
        return paper, topic, topics.get(topic)

    def has(self, question_id: Optional[str]) -> bool:
        if not question_id:
            return False
        _, _, node = self._topic_node(question_id)
        return bool(node and question_id in node.get("items", {}))

    def add_attempt(self, question_id: Optional[str], time_taken_seconds=None,
                    notes: Optional[str] = None, completed_at: Optional[str] = None) -> bool:
        """
        Record a completion. Returns True only when the question is new to the tree.
        For a known question only the supplied fields are merged; totals never move.
        """
        if not question_id:
            return False
        paper, topic, node = self._topic_node(question_id, create=True)
        items = node.setdefault("items", {})

        existing = items.get(question_id)
        if existing is None:
            items[question_id] = {
                "completedAt": completed_at or utc_now_iso(),
                "timeTakenSeconds": time_taken_seconds,
                "notes": notes or "",
            }
            self.totals["all"] += 1
            self.totals[paper] += 1
            self.totals["topics"][topic] = self.totals["topics"].get(topic, 0) + 1
            return True

        if time_taken_seconds is not None:
            existing["timeTakenSeconds"] = time_taken_seconds
        if notes is not None:
            existing["notes"] = notes
        if completed_at:
            existing["completedAt"] = completed_at
        return False

    def topic_count(self, topic: str) -> int:
        return self.totals["topics"].get(topic, 0)

    def paper_count(self, paper: str) -> int:
        return self.totals.get(paper, 0)

    def total_count(self) -> int:
        return self.totals["all"]

    def to_attempts_array(self) -> List[dict]:
        """Flatten the leaves into attempt-like records, most recent first."""
        out = []
        for paper in PAPERS:
            for topic, node in self.tree[paper]["topics"].items():
                for question_id, meta in node.get("items", {}).items():
                    out.append({
                        "questionId": question_id,
                        "completedAt": meta.get("completedAt"),
                        "timeTakenSeconds": meta.get("timeTakenSeconds"),
                        "notes": meta.get("notes"),
                        "topic": topic,
                        "paper": paper,
                    })
        # sort() is stable, so ties keep insertion order
        out.sort(key=lambda record: _timestamp(record["completedAt"]), reverse=True)
        return out

    def to_json(self) -> dict:
        return {
            "version": self.version,
            "tree": copy.deepcopy(self.tree),
            "totals": copy.deepcopy(self.totals),
        }

    def snapshot(self) -> dict:
        """The {tree, totals} pair handed back to clients after a submission."""
        return {"tree": copy.deepcopy(self.tree), "totals": copy.deepcopy(self.totals)}


def is_valid_snapshot(raw) -> bool:
    if not isinstance(raw, dict):
        return False
    tree, totals = raw.get("tree"), raw.get("totals")
    if not isinstance(tree, dict) or not isinstance(totals, dict):
        return False
    for paper in PAPERS:
        node = tree.get(paper)
        if not isinstance(node, dict) or not isinstance(node.get("topics"), dict):
            return False
        for topic_node in node["topics"].values():
            if not isinstance(topic_node, dict) or not isinstance(topic_node.get("items", {}), dict):
                return False
        if not isinstance(totals.get(paper), int):
            return False
    return isinstance(totals.get("all"), int) and isinstance(totals.get("topics"), dict)


def restore_progress_tree(raw, classifier: Optional[PaperClassifier] = None) -> ProgressTree:
    """Best-effort restore: anything malformed yields a fresh empty tree."""
    if is_valid_snapshot(raw):
        return ProgressTree(raw, classifier=classifier)
    return ProgressTree(classifier=classifier)
