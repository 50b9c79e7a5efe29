import asyncio
from typing import Optional

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from logger import practice_logger  # Import the logger
from config import Settings, load_settings
from errors import register_error_handlers
from auth import TokenService
from mailer import Mailer
from question_store import QuestionStore
from topics import load_classifier
from user_store import UserStore
from verification import VerificationCodeService

import account_routes
import attempt_routes
import auth_routes
import contact_routes
import favourite_routes
import progress_routes
import question_routes
import topic_routes

ROUTERS = (
    auth_routes.router,
    account_routes.router,
    question_routes.router,
    topic_routes.router,
    progress_routes.router,
    attempt_routes.router,
    favourite_routes.router,
    contact_routes.router,
)


async def _cleanup_loop(app: FastAPI, interval_seconds: int):
    """Drop expired verification codes and report accounts past the retention window."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(app.state.codes.cleanup_expired)
            if removed:
                practice_logger.info(f"🧹 Removed {removed} expired verification codes")
            stale = await asyncio.to_thread(
                app.state.users.get_users_for_retention, app.state.settings.data_retention_days
            )
            if stale:
                practice_logger.info(f"{len(stale)} users are past the data retention window")
        except Exception as e:
            practice_logger.error(f"Cleanup task failed: {e}", exc_info=True)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the app with every store and service attached to app.state.
    """
    # --- 1. Settings ---
    settings = settings or load_settings()

    # --- 2. Initialize FastAPI App ---
    app = FastAPI(title="Math Practice API")
    app.state.settings = settings

    # --- 3. Stores and Services ---
    classifier = load_classifier(settings.topic_paper_map_path)
    users = UserStore(settings.database_path, settings.encryption_key, classifier=classifier)
    app.state.users = users
    # Codes share the user document so both are written under one lock
    app.state.codes = VerificationCodeService(
        users.store,
        settings.encryption_key,
        users.cipher,
        expiry_minutes=settings.code_expiry_minutes,
        cooldown_seconds=settings.code_cooldown_seconds,
        max_attempts=settings.max_code_attempts,
    )
    app.state.questions = QuestionStore(settings.questions_dir)
    app.state.mailer = Mailer.from_settings(settings)
    app.state.tokens = TokenService(
        settings.jwt_secret, settings.refresh_token_secret, secure_cookies=settings.is_production
    )

    # --- 4. Middleware, Error Handlers, Routes ---
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        https_only=settings.is_production,
        same_site="lax",
        max_age=24 * 60 * 60,
    )
    register_error_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "OK", "environment": settings.environment}

    # --- 5. Background Cleanup ---
    @app.on_event("startup")
    async def startup_event():
        practice_logger.info(f"🚀 Math Practice API starting ({settings.environment})")
        app.state.cleanup_task = asyncio.create_task(
            _cleanup_loop(app, settings.code_cleanup_interval_seconds)
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        task = getattr(app.state, "cleanup_task", None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        practice_logger.info("Math Practice API stopped")

    return app


app = create_app()
