"""
Authentication helpers: JWT cookie tokens, password hashing and the FastAPI
dependencies that resolve the calling user.

Two issuers feed the same dependencies: the email-code flow sets
accessToken/refreshToken cookies, the password flow stores userId in the
signed session cookie.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Request, Response
from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import AuthError

ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = 15
REFRESH_TOKEN_DAYS = 7
ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
MIN_PASSWORD_LENGTH = 8

# pbkdf2 hashes new passwords; bcrypt is only there to verify older hashes
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def check_password_strength(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


class TokenService:

    def __init__(self, access_secret: str, refresh_secret: str, secure_cookies: bool = False):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.secure_cookies = secure_cookies

    def _encode(self, user_id: str, token_type: str, lifetime: timedelta, secret: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": user_id, "type": token_type, "iat": now, "exp": now + lifetime}
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def generate_tokens(self, user_id: str) -> dict:
        return {
            "accessToken": self._encode(user_id, "access", timedelta(minutes=ACCESS_TOKEN_MINUTES), self.access_secret),
            "refreshToken": self._encode(user_id, "refresh", timedelta(days=REFRESH_TOKEN_DAYS), self.refresh_secret),
        }

    def _decode(self, token: str, secret: str, expected_type: str) -> str:
        try:
            payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
        except JWTError as e:
            raise AuthError(f"Invalid {expected_type} token") from e
        if payload.get("type") != expected_type or not payload.get("sub"):
            raise AuthError(f"Invalid {expected_type} token")
        return payload["sub"]

    def verify_access_token(self, token: str) -> str:
        return self._decode(token, self.access_secret, "access")

    def verify_refresh_token(self, token: str) -> str:
        return self._decode(token, self.refresh_secret, "refresh")

    def set_access_cookie(self, response: Response, access_token: str) -> None:
        response.set_cookie(
            ACCESS_COOKIE, access_token,
            httponly=True, secure=self.secure_cookies, samesite="lax",
            max_age=ACCESS_TOKEN_MINUTES * 60,
        )

    def set_auth_cookies(self, response: Response, tokens: dict) -> None:
        self.set_access_cookie(response, tokens["accessToken"])
        response.set_cookie(
            REFRESH_COOKIE, tokens["refreshToken"],
            httponly=True, secure=self.secure_cookies, samesite="lax",
            max_age=REFRESH_TOKEN_DAYS * 24 * 60 * 60,
        )

    def clear_auth_cookies(self, response: Response) -> None:
        response.delete_cookie(ACCESS_COOKIE)
        response.delete_cookie(REFRESH_COOKIE)


# --- FastAPI dependencies ---

def _token_user_id(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if not token:
        return None
    try:
        return request.app.state.tokens.verify_access_token(token)
    except AuthError:
        return None


def _session_user_id(request: Request) -> Optional[str]:
    if "session" not in request.scope:
        return None
    return request.session.get("userId")


def optional_user_id(request: Request) -> Optional[str]:
    """User id from the access cookie or the session, or None for anonymous callers."""
    return _token_user_id(request) or _session_user_id(request)


def current_user_id(request: Request) -> str:
    user_id = optional_user_id(request)
    if user_id:
        return user_id
    if request.cookies.get(ACCESS_COOKIE):
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    raise HTTPException(status_code=401, detail="Not authenticated")


def session_user_id(request: Request) -> str:
    """Password-flow endpoints only look at the session."""
    user_id = _session_user_id(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
