"""
Topic normalisation and paper classification.

Question ids look like 'alg-1001': the part before the first dash names the
topic. Topics are grouped into the two exam papers through an explicit
topic -> paper mapping that can be swapped for a JSON file, so a change in
id conventions shows up as an unmapped topic instead of a silent guess.
"""
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

PAPER1 = "paper1"
PAPER2 = "paper2"
PAPERS = (PAPER1, PAPER2)
UNKNOWN_TOPIC = "unknown"

PAPER1_TOPICS = (
    "algebra", "algebraic", "polynomial", "quadratic", "alg",
    "complex", "complex-numbers", "imaginary", "comp",
    "differentiation", "derivative", "diff",
    "integration", "integral", "integrate", "int", "integ",
    "sequences", "sequence", "series", "arithmetic", "geometric",
    "sequences-and-series", "sequences-series", "seq",
    "financial", "financial-maths", "compound-interest", "annuity", "fin",
    "induction", "mathematical-induction", "proof-by-induction", "ind",
)

# Aliases map to canonical topic names (all lowercase)
TOPIC_ALIASES = {
    "diff": "differentiation",
    "differentiation": "differentiation",
    "derivative": "differentiation",
    "derivatives": "differentiation",
    "int": "integration",
    "integ": "integration",
    "integration": "integration",
    "functions": "functions",
    "func": "functions",
    "fn": "functions",
    "alg": "algebra",
    "algebra": "algebra",
    "seq": "sequences-and-series",
    "sequences-and-series": "sequences-and-series",
    "series": "sequences-and-series",
}

# Composite identifiers expanded to their underlying canonical topics
BUNDLE_MAP = {
    "algebra-functions-differentiation-integration": ["algebra", "functions", "differentiation", "integration"],
    "algebra-functions-differentiation": ["algebra", "functions", "differentiation"],
    "fun-dif-int": ["functions", "differentiation", "integration"],
}


def topic_from_question_id(question_id: Optional[str]) -> str:
    """'alg-1001' -> 'alg'. Empty ids and ids starting with '-' give 'unknown'."""
    if not question_id:
        return UNKNOWN_TOPIC
    return question_id.split("-", 1)[0] or UNKNOWN_TOPIC


class PaperClassifier:
    """Explicit topic -> paper lookup. Anything unmapped belongs to paper2."""

    def __init__(self, mapping: Dict[str, str], default: str = PAPER2):
        if default not in PAPERS:
            raise ValueError(f"Unknown default paper: {default}")
        self.default = default
        self.mapping = {}
        for topic, paper in mapping.items():
            if paper not in PAPERS:
                raise ValueError(f"Topic '{topic}' mapped to unknown paper '{paper}'")
            self.mapping[topic.lower()] = paper

    @classmethod
    def default_classifier(cls) -> "PaperClassifier":
        return cls({topic: PAPER1 for topic in PAPER1_TOPICS})

    @classmethod
    def from_file(cls, path: str) -> "PaperClassifier":
        """Load {"paper1": [...topics], "paper2": [...topics]} from a JSON file."""
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Topic map in {path} must be a JSON object")
        mapping = {}
        for paper in PAPERS:
            for topic in data.get(paper, []):
                mapping[str(topic)] = paper
        return cls(mapping)

    def classify(self, topic: Optional[str]) -> str:
        return self.mapping.get((topic or "").lower(), self.default)

    def locate(self, question_id: Optional[str]) -> Tuple[str, str]:
        """Return (paper, topic) for a question id."""
        topic = topic_from_question_id(question_id)
        return self.classify(topic), topic


def load_classifier(path: Optional[str] = None) -> PaperClassifier:
    if path and Path(path).exists():
        return PaperClassifier.from_file(path)
    return PaperClassifier.default_classifier()


def canonicalize(raw) -> Optional[str]:
    if not raw:
        return None
    key = str(raw).strip().lower()
    return TOPIC_ALIASES.get(key, key)


def expand_topic(raw) -> List[str]:
    """Expand a single raw topic (which may be a bundle) to canonical topics."""
    canon = canonicalize(raw)
    if not canon:
        return []
    if canon in BUNDLE_MAP:
        return [canonicalize(t) for t in BUNDLE_MAP[canon]]
    return [canon]


def question_topics(question: Optional[dict]) -> List[str]:
    """Canonical, de-duplicated topics of a question, in their original order."""
    if not question:
        return []
    raw = question.get("topic", question.get("topics"))
    raw_list = raw if isinstance(raw, list) else [raw]
    ordered = []
    for raw_topic in raw_list:
        for topic in expand_topic(raw_topic):
            if topic and topic not in ordered:
                ordered.append(topic)
    return ordered


def matches_question(question: dict, requested: List[str], mode: str = "any") -> bool:
    if not requested:
        return True
    topics = question_topics(question)
    if mode == "all":
        return all(t in topics for t in requested)
    return any(t in topics for t in requested)


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def parse_requested_topics(topic: Optional[str] = None, topics: Optional[str] = None,
                           match: Optional[str] = None) -> Tuple[List[str], str]:
    """Turn the topic/topics/match query parameters into (canonical topics, mode)."""
    requested = split_csv(topic) + split_csv(topics)
    canonical = []
    for raw in requested:
        canon = canonicalize(raw)
        if canon and canon not in canonical:
            canonical.append(canon)
    mode = "all" if match == "all" else "any"
    return canonical, mode


def normalize_topics(value) -> List[str]:
    """Lower-cased topic list from either a string or a list."""
    if isinstance(value, str):
        return [value.lower().strip()]
    if isinstance(value, list):
        return [str(t).lower().strip() for t in value if t]
    return []


def loosely_matches(question: dict, requested: Iterable[str]) -> bool:
    """Substring match in either direction, as used by the topic browser."""
    q_topics = normalize_topics(question.get("topic", question.get("topics")))
    wanted = normalize_topics(list(requested))
    return any(q in r or r in q for q in q_topics for r in wanted)
