from fastapi import APIRouter, Depends, HTTPException

from auth import current_user_id
from dependencies import get_users
from logger import practice_logger
from models import FavouriteRequest
from user_store import FAVOURITE_FIELDS, UserStore

router = APIRouter(prefix="/api/favourites", tags=["favourites"])


@router.get("")
def list_favourites(user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    return {"favourites": users.list_favourites(user_id)}


@router.get("/check/{question_id}")
def check_favourite(question_id: str, user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    return {"isFavourite": users.is_favourite(user_id, question_id)}


@router.post("/add")
def add_favourite(
    payload: FavouriteRequest,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    details = {field: getattr(payload, field) for field in FAVOURITE_FIELDS}
    favourite, created = users.add_favourite(user_id, payload.questionId, **details)
    if not created:
        practice_logger.info(f"ℹ️ {payload.questionId} already in favourites")
        return {"success": True, "message": "Question already in favourites"}
    practice_logger.info(f"⭐ Added {payload.questionId} to favourites")
    return {"success": True, "message": "Question added to favourites", "favourite": favourite}


@router.delete("/remove/{question_id}")
def remove_favourite(question_id: str, user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    if not users.remove_favourite(user_id, question_id):
        raise HTTPException(status_code=404, detail="Favourite not found")
    return {"success": True, "message": "Question removed from favourites"}


@router.get("/stats/by-topic")
def favourite_stats(user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    return {"stats": users.favourite_stats_by_topic(user_id)}
