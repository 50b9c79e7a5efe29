"""
Password accounts backed by the signed session cookie.
Users created here live in the same store as the email-code accounts.
"""
from fastapi import APIRouter, Depends, HTTPException, Request

from auth import check_password_strength, hash_password, session_user_id, verify_password
from dependencies import get_users
from errors import ConflictError
from logger import practice_logger
from models import NameUpdate, PasswordChangeRequest, PasswordLoginRequest, PasswordSignupRequest
from user_store import UserStore

router = APIRouter(prefix="/api/user-auth", tags=["user-auth"])


def _account_view(user: dict, users: UserStore) -> dict:
    return {
        "id": user["id"],
        "email": users.decrypt_email(user["email"]),
        "firstName": user.get("firstName"),
        "lastName": user.get("lastName"),
        "role": user.get("role", "user"),
        "createdAt": user.get("createdAt"),
        "lastLogin": user.get("lastLoginAt"),
    }


def _start_session(request: Request, user: dict, email: str) -> None:
    request.session["userId"] = user["id"]
    request.session["userEmail"] = email
    request.session["userRole"] = user.get("role", "user")


@router.post("/signup", status_code=201)
def signup(payload: PasswordSignupRequest, request: Request, users: UserStore = Depends(get_users)):
    if users.find_user_by_email(payload.email):
        raise ConflictError("User with this email already exists")
    check_password_strength(payload.password)

    full_name = " ".join(part for part in (payload.firstName, payload.lastName) if part)
    user = users.create_user(
        payload.email,
        name=full_name,
        provider="password",
        password_hash=hash_password(payload.password),
    )
    user = users.update_user(user["id"], {"firstName": payload.firstName, "lastName": payload.lastName})
    _start_session(request, user, payload.email)
    return {"message": "User created successfully", "user": _account_view(user, users)}


@router.post("/login")
def login(payload: PasswordLoginRequest, request: Request, users: UserStore = Depends(get_users)):
    user = users.find_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.get("passwordHash")):
        practice_logger.warning("Failed password login")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    user = users.update_last_login(user["id"])
    _start_session(request, user, payload.email)
    return {"message": "Login successful", "user": _account_view(user, users)}


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"message": "Logged out successfully"}


@router.get("/me")
def me(user_id: str = Depends(session_user_id), users: UserStore = Depends(get_users)):
    user = users.find_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": _account_view(user, users)}


@router.put("/password")
def change_password(
    payload: PasswordChangeRequest,
    user_id: str = Depends(session_user_id),
    users: UserStore = Depends(get_users),
):
    user = users.find_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_password(payload.currentPassword, user.get("passwordHash")):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    check_password_strength(payload.newPassword)

    users.set_password_hash(user_id, hash_password(payload.newPassword))
    return {"message": "Password updated successfully"}


@router.put("/update-profile")
def update_profile(
    payload: NameUpdate,
    user_id: str = Depends(session_user_id),
    users: UserStore = Depends(get_users),
):
    full_name = " ".join(part for part in (payload.firstName, payload.lastName) if part)
    users.update_user(user_id, {"firstName": payload.firstName, "lastName": payload.lastName, "name": full_name})
    return {"message": "Profile updated successfully"}


@router.get("/check")
def check(request: Request):
    user_id = request.session.get("userId")
    return {"authenticated": bool(user_id), "userId": user_id}
