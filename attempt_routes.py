"""
Attempt browser: the flat attempt list with the question metadata the
client attaches on submission.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from auth import current_user_id
from dependencies import get_users
from models import AttemptRecord, NotesUpdate
from user_store import ATTEMPT_META_FIELDS, UserStore

router = APIRouter(prefix="/api/attempts", tags=["attempts"])


@router.post("")
def save_attempt(
    payload: AttemptRecord,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    meta = {field: getattr(payload, field) for field in ATTEMPT_META_FIELDS}
    attempt, _ = users.add_or_update_attempt(
        user_id, payload.questionId,
        time_taken_seconds=payload.timeTakenSeconds,
        notes=payload.notes,
        **meta,
    )
    return {"success": True, "attempt": attempt, "message": "Attempt saved successfully"}


@router.get("")
def list_attempts(
    topic: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    attempts = users.get_attempts(user_id, topic=topic, limit=limit, offset=offset)
    return {"success": True, "attempts": attempts, "count": len(attempts)}


@router.get("/stats/summary")
def attempt_stats(user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    return {"success": True, "stats": users.get_attempt_stats(user_id)}


@router.get("/{question_id}")
def get_attempt(question_id: str, user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    attempt = users.get_attempt(user_id, question_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail="Attempt not found")
    return {"success": True, "attempt": attempt}


@router.patch("/{question_id}/notes")
def update_notes(
    question_id: str,
    payload: NotesUpdate,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    # NotFoundError from the store answers 404
    attempt = users.update_attempt_notes(user_id, question_id, payload.notes)
    return {"success": True, "attempt": attempt, "message": "Notes updated successfully"}
