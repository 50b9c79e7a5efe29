"""
Question bank backed by one JSON file per topic.

Files are read wholesale on every call and filtered in memory; there is no
index and no cache, so edits to the files show up on the next request.
"""
import json
import math
import random
import re
from pathlib import Path
from typing import Iterable, List, Optional

from logger import practice_logger
from topics import loosely_matches, matches_question, parse_requested_topics

MIN_SUPPORTED_YEAR = 2010
LONG_QUESTION_MINUTES = 15
ASSET_PREFIX = "src/assets/questions/"
PUBLIC_ASSET_PREFIX = "/questions/"

_YEAR_RE = re.compile(r"^(\d{4})")


def _normalize_asset_path(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    if path.startswith(ASSET_PREFIX):
        return PUBLIC_ASSET_PREFIX + path[len(ASSET_PREFIX):]
    return path


def serialize_question(question: dict) -> dict:
    """Question as served to the practice page."""
    question_url = _normalize_asset_path(question.get("questionTifUrl") or question.get("questionPngUrl"))
    solution_url = _normalize_asset_path(question.get("solutionTifUrl") or question.get("solutionPngUrl"))
    serialized = dict(question)
    serialized.update({
        "questionTifUrl": question_url,
        "solutionTifUrl": solution_url,
        "questionPngUrl": question_url,
        "solutionPngUrl": solution_url,
        "timeLimitSeconds": max(0, math.floor((question.get("timeLimitMinute") or 0) * 60)),
    })
    return serialized


def format_topic_question(question: dict) -> dict:
    """Compact shape used by the topic browser."""
    question_image = question.get("questionTifUrl") or question.get("questionPngUrl")
    solution_image = question.get("solutionTifUrl") or question.get("solutionPngUrl")
    return {
        "id": question.get("id"),
        "name": question.get("name") or question.get("id") or "Unknown",
        "topic": question.get("topic", question.get("topics")),
        "level": question.get("level"),
        "difficulty": question.get("difficulty"),
        "timeLimitMinute": question.get("timeLimitMinute"),
        "questionImageUrl": _normalize_asset_path(question_image),
        "solutionImageUrl": _normalize_asset_path(solution_image),
        "tags": question.get("tags") or [],
        "complete": bool(question.get("complete", False)),
    }


def question_year(question: dict) -> Optional[int]:
    """'2019 P2 Question 7' -> 2019."""
    match = _YEAR_RE.match(str(question.get("name") or ""))
    return int(match.group(1)) if match else None


def _parse_year(value) -> Optional[int]:
    if value in (None, ""):
        return None
    match = _YEAR_RE.match(str(value))
    return int(match.group(1)) if match else None


class QuestionStore:

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def all_questions(self) -> List[dict]:
        if not self.directory.is_dir():
            practice_logger.error(f"Question directory not found: {self.directory}")
            return []
        questions = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, ValueError) as e:
                practice_logger.warning(f"Failed to load {path.name}: {e}")
                continue
            if not isinstance(data, list):
                practice_logger.warning(f"Skipping {path.name}: expected a list of questions")
                continue
            practice_logger.debug(f"Loaded {len(data)} questions from {path.name}")
            questions.extend(q for q in data if isinstance(q, dict))
        return questions

    def get(self, question_id: str) -> Optional[dict]:
        for question in self.all_questions():
            if question.get("id") == question_id:
                return question
        return None

    def index(self) -> dict:
        return {q.get("id"): q for q in self.all_questions()}

    def filter(
        self,
        topic: Optional[str] = None,
        topics: Optional[str] = None,
        match: Optional[str] = None,
        level: Optional[str] = None,
        difficulty: Optional[str] = None,
        only_incomplete: bool = False,
        exam_only: bool = False,
        long_only: bool = False,
        short_only: bool = False,
        year_from=None,
        year_to=None,
    ) -> List[dict]:
        filtered = self.all_questions()

        requested, mode = parse_requested_topics(topic, topics, match)
        if requested:
            filtered = [q for q in filtered if matches_question(q, requested, mode)]
        if level:
            filtered = [q for q in filtered if q.get("level") == level]
        if difficulty:
            filtered = [q for q in filtered if str(q.get("difficulty")) == str(difficulty)]
        if only_incomplete:
            filtered = [q for q in filtered if not q.get("complete")]
        if exam_only:
            # Past-exam ids have a numeric part starting with 1, e.g. stat-1001
            filtered = [q for q in filtered if str(q.get("id", "")).partition("-")[2].startswith("1")]
        if long_only:
            filtered = [q for q in filtered if (q.get("timeLimitMinute") or 0) > LONG_QUESTION_MINUTES]
        if short_only:
            filtered = [q for q in filtered if (q.get("timeLimitMinute") or 0) <= LONG_QUESTION_MINUTES]

        newest, oldest = _parse_year(year_from), _parse_year(year_to)
        if newest is not None or oldest is not None:
            filtered = [q for q in filtered if self._within_years(q, newest, oldest)]
        return filtered

    @staticmethod
    def _within_years(question: dict, newest: Optional[int], oldest: Optional[int]) -> bool:
        year = question_year(question)
        if year is None or year < MIN_SUPPORTED_YEAR:
            return False
        if newest is not None and year > newest:
            return False
        if oldest is not None and year < oldest:
            return False
        return True

    def stats(self) -> dict:
        """Question counts per topic, for progress bar denominators."""
        questions = self.all_questions()
        counts = {}
        for question in questions:
            raw = question.get("topic")
            for topic in (raw if isinstance(raw, list) else [raw]):
                if topic:
                    counts[topic] = counts.get(topic, 0) + 1
        return {"total": len(questions), "topics": counts}

    def available_topics(self) -> List[str]:
        found = set()
        for question in self.all_questions():
            raw = question.get("topic", question.get("topics"))
            if isinstance(raw, str):
                found.add(raw.lower().strip())
            elif isinstance(raw, list):
                found.update(str(t).lower().strip() for t in raw if t)
        return sorted(found)

    def match_topics(self, requested: Iterable[str]) -> List[dict]:
        requested = list(requested)
        return [q for q in self.all_questions() if loosely_matches(q, requested)]

    @staticmethod
    def pick(questions: List[dict], count: int = 1, rng: Optional[random.Random] = None) -> List[dict]:
        """Random sample of up to `count` questions."""
        rng = rng or random
        if count <= 1:
            return [rng.choice(questions)] if questions else []
        return rng.sample(questions, min(count, len(questions)))
