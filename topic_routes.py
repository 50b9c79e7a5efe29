from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_questions
from models import TopicQuery
from question_store import QuestionStore, format_topic_question
from topics import normalize_topics, split_csv

router = APIRouter(prefix="/api/topics", tags=["topics"])


def _available(store: QuestionStore) -> dict:
    topics = store.available_topics()
    return {
        "message": "Available topics retrieved successfully",
        "totalTopics": len(topics),
        "topics": topics,
    }


def _matching(store: QuestionStore, requested) -> dict:
    if not store.all_questions():
        raise HTTPException(status_code=404, detail="No questions found")
    matches = [format_topic_question(q) for q in store.match_topics(normalize_topics(requested))]
    if not matches:
        return {
            "message": "No questions found for the specified topics",
            "requestedTopics": requested,
            "matchingQuestions": [],
        }
    return {
        "message": "Questions found successfully",
        "requestedTopics": requested,
        "totalMatches": len(matches),
        "matchingQuestions": matches,
    }


@router.get("")
def list_topics(store: QuestionStore = Depends(get_questions)):
    return _available(store)


@router.get("/available")
def available_topics(store: QuestionStore = Depends(get_questions)):
    return _available(store)


@router.get("/questions")
def questions_by_topic_query(topics: Optional[str] = None, store: QuestionStore = Depends(get_questions)):
    requested: List[str] = split_csv(topics)
    if not requested:
        raise HTTPException(status_code=400, detail="Topics parameter is required")
    return _matching(store, requested)


@router.post("/questions")
def questions_by_topic_body(payload: TopicQuery, store: QuestionStore = Depends(get_questions)):
    if not payload.topics:
        raise HTTPException(status_code=400, detail="Topics parameter is required")
    return _matching(store, payload.topics)
