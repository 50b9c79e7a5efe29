"""
Per-user practice progress. Every route needs an authenticated user.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends

from auth import current_user_id
from dependencies import get_questions, get_users
from logger import practice_logger
from models import AttemptSubmission
from question_store import QuestionStore
from user_store import UserStore

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.post("/{question_id}/attempt")
def save_attempt(
    question_id: str,
    payload: Optional[AttemptSubmission] = Body(None),
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    payload = payload or AttemptSubmission()
    attempt, tree = users.add_or_update_attempt(
        user_id, question_id,
        time_taken_seconds=payload.timeTakenSeconds,
        notes=payload.notes,
    )
    practice_logger.info(f"✅ Attempt saved for {question_id} ({tree.total_count()} completed)")
    return {"success": True, "attempt": attempt, "progress": tree.snapshot()}


@router.get("")
def get_progress(user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    return users.get_progress_tree(user_id).to_json()


@router.get("/attempts")
def list_attempts(user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    return {"attempts": users.get_attempts(user_id)}


@router.get("/completed")
def completed_questions(
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
    store: QuestionStore = Depends(get_questions),
):
    attempts = users.get_attempts(user_id)
    if not attempts:
        return {"attempts": [], "total": 0}
    index = store.index()
    enriched = [{**a, "question": index.get(a["questionId"])} for a in attempts]
    return {"attempts": enriched, "total": len(enriched)}
