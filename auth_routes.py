"""
Email-code authentication: signup and login both finish by verifying a
6-digit code, after which JWT cookies are issued.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from auth import REFRESH_COOKIE, TokenService, current_user_id
from dependencies import get_codes, get_mailer, get_tokens, get_users
from errors import ConflictError
from logger import practice_logger
from mailer import Mailer
from models import (
    ConsentUpdate, LoginRequest, ProfileUpdate, SignupRequest, VerifyEmailRequest, VerifyLoginRequest,
)
from user_store import DUPLICATE_USER, UserStore
from verification import EMAIL_VERIFICATION, LOGIN_VERIFICATION, VerificationCodeService

router = APIRouter(prefix="/api/auth", tags=["auth"])

INVALID_CODE = "Invalid or expired verification code"


@router.post("/signup")
def signup(
    payload: SignupRequest,
    users: UserStore = Depends(get_users),
    codes: VerificationCodeService = Depends(get_codes),
    mailer: Mailer = Depends(get_mailer),
):
    if users.find_user_by_email(payload.email):
        raise ConflictError(DUPLICATE_USER)

    issued = codes.issue(payload.email, EMAIL_VERIFICATION)
    mailer.send_verification_email(payload.email, issued.code, payload.name)
    practice_logger.info(f"Signup code {'reissued' if issued.reused else 'issued'}")
    return {"message": "Verification code sent to your email", "email": payload.email}


@router.post("/verify-email", status_code=201)
def verify_email(
    payload: VerifyEmailRequest,
    response: Response,
    users: UserStore = Depends(get_users),
    codes: VerificationCodeService = Depends(get_codes),
    tokens: TokenService = Depends(get_tokens),
):
    if not codes.verify(payload.email, payload.code, EMAIL_VERIFICATION):
        raise HTTPException(status_code=400, detail=INVALID_CODE)
    if users.find_user_by_email(payload.email):
        raise ConflictError(DUPLICATE_USER)

    user = users.create_user(
        payload.email,
        name=payload.name,
        provider="email",
        email_verified=True,
        marketing_consent=payload.marketingConsent,
    )
    tokens.set_auth_cookies(response, tokens.generate_tokens(user["id"]))
    profile = users.public_profile(user)
    return {
        "message": "Account created successfully",
        "user": {k: profile[k] for k in ("id", "email", "name", "avatar", "emailVerified")},
    }


@router.post("/login")
def login(
    payload: LoginRequest,
    users: UserStore = Depends(get_users),
    codes: VerificationCodeService = Depends(get_codes),
    mailer: Mailer = Depends(get_mailer),
):
    user = users.find_user_by_email(payload.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    issued = codes.issue(payload.email, LOGIN_VERIFICATION)
    email = users.decrypt_email(user["email"])
    mailer.send_verification_email(email, issued.code, user.get("name", ""))
    return {"message": "Verification code sent to your email", "email": email}


@router.post("/verify-login")
def verify_login(
    payload: VerifyLoginRequest,
    response: Response,
    users: UserStore = Depends(get_users),
    codes: VerificationCodeService = Depends(get_codes),
    tokens: TokenService = Depends(get_tokens),
):
    if not codes.verify(payload.email, payload.code, LOGIN_VERIFICATION):
        raise HTTPException(status_code=400, detail=INVALID_CODE)
    user = users.find_user_by_email(payload.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user = users.update_last_login(user["id"])
    tokens.set_auth_cookies(response, tokens.generate_tokens(user["id"]))
    profile = users.public_profile(user)
    return {
        "message": "Login successful",
        "user": {k: profile[k] for k in ("id", "email", "name", "avatar", "emailVerified")},
    }


@router.post("/refresh")
def refresh(
    request: Request,
    response: Response,
    users: UserStore = Depends(get_users),
    tokens: TokenService = Depends(get_tokens),
):
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    if not refresh_token:
        raise HTTPException(status_code=401, detail="No refresh token provided")
    # AuthError from a bad token becomes a 401 via the error handlers
    user_id = tokens.verify_refresh_token(refresh_token)
    if not users.find_user_by_id(user_id):
        raise HTTPException(status_code=401, detail="User not found")

    tokens.set_access_cookie(response, tokens.generate_tokens(user_id)["accessToken"])
    return {"message": "Token refreshed successfully"}


@router.get("/me")
def me(user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    user = users.find_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return {"user": users.public_profile(user)}


@router.post("/logout")
def logout(response: Response, tokens: TokenService = Depends(get_tokens)):
    tokens.clear_auth_cookies(response)
    return {"message": "Logged out successfully"}


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    user = users.find_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    updates = {}
    if payload.name is not None:
        updates["name"] = payload.name
    if payload.preferences is not None:
        updates["preferences"] = {**user.get("preferences", {}), **payload.preferences}
    updated = users.update_user(user_id, updates)
    if payload.marketingConsent is not None:
        updated = users.update_consent(user_id, payload.marketingConsent)

    profile = users.public_profile(updated)
    return {
        "message": "Profile updated successfully",
        "user": {k: profile[k] for k in ("id", "email", "name", "avatar", "emailVerified", "preferences")},
    }


@router.put("/consent")
def update_consent(
    payload: ConsentUpdate,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
):
    updated = users.update_consent(user_id, payload.marketing, payload.version)
    return {
        "message": "Consent updated successfully",
        "consent": {k: updated[k] for k in ("marketingConsent", "consentDate", "consentVersion")},
    }


@router.get("/export")
def export_data(response: Response, user_id: str = Depends(current_user_id), users: UserStore = Depends(get_users)):
    response.headers["Content-Disposition"] = "attachment; filename=user_data.json"
    return users.export_user_data(user_id)


@router.delete("/account")
def delete_account(
    response: Response,
    user_id: str = Depends(current_user_id),
    users: UserStore = Depends(get_users),
    tokens: TokenService = Depends(get_tokens),
):
    users.delete_user_data(user_id)
    tokens.clear_auth_cookies(response)
    return {"message": "Account deleted successfully"}
