from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from auth import optional_user_id
from dependencies import get_questions, get_users
from logger import practice_logger
from question_store import QuestionStore, serialize_question
from user_store import UserStore

router = APIRouter(prefix="/api/questions", tags=["questions"])

CACHE_SHORT = "public, max-age=300, s-maxage=600"
CACHE_SINGLE = "public, max-age=600, s-maxage=1200"


def _with_completion(question: dict, user_id: Optional[str], users: UserStore) -> dict:
    serialized = serialize_question(question)
    if user_id:
        serialized["completedForUser"] = users.has_completed(user_id, question.get("id"))
    return serialized


@router.get("")
def random_question(
    response: Response,
    id: Optional[str] = None,
    topic: Optional[str] = None,
    topics: Optional[str] = None,
    match: Optional[str] = None,
    level: Optional[str] = None,
    difficulty: Optional[str] = None,
    only_incomplete: bool = Query(False, alias="onlyIncomplete"),
    exam_only: bool = Query(False, alias="examOnly"),
    long_only: bool = Query(False, alias="longOnly"),
    short_only: bool = Query(False, alias="shortOnly"),
    year_from: Optional[str] = Query(None, alias="yearFrom"),
    year_to: Optional[str] = Query(None, alias="yearTo"),
    count: int = 1,
    user_id: Optional[str] = Depends(optional_user_id),
    store: QuestionStore = Depends(get_questions),
    users: UserStore = Depends(get_users),
):
    """
    A random question (or `count` of them) matching the filters,
    or a single question when `id` is given.
    """
    if id:
        question = store.get(id)
        if question is None:
            practice_logger.info(f"Question {id} not found")
            raise HTTPException(status_code=404, detail="Question not found")
        response.headers["Cache-Control"] = CACHE_SINGLE
        return _with_completion(question, user_id, users)

    filtered = store.filter(
        topic=topic, topics=topics, match=match, level=level, difficulty=difficulty,
        only_incomplete=only_incomplete, exam_only=exam_only, long_only=long_only,
        short_only=short_only, year_from=year_from, year_to=year_to,
    )
    if not filtered:
        raise HTTPException(status_code=404, detail="No questions found matching the criteria")

    picked = store.pick(filtered, count)
    practice_logger.debug(f"Serving {len(picked)} of {len(filtered)} matching questions")
    if count > 1:
        return [_with_completion(q, user_id, users) for q in picked]
    return _with_completion(picked[0], user_id, users)


@router.get("/all")
def all_questions(response: Response, store: QuestionStore = Depends(get_questions)):
    response.headers["Cache-Control"] = CACHE_SHORT
    return [serialize_question(q) for q in store.all_questions()]


@router.get("/stats")
def question_stats(response: Response, store: QuestionStore = Depends(get_questions)):
    response.headers["Cache-Control"] = CACHE_SHORT
    return store.stats()


@router.get("/{question_id}")
def get_question(
    question_id: str,
    user_id: Optional[str] = Depends(optional_user_id),
    store: QuestionStore = Depends(get_questions),
    users: UserStore = Depends(get_users),
):
    question = store.get(question_id)
    if question is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return _with_completion(question, user_id, users)
