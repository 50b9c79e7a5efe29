"""
Accessors for the services that create_app() attaches to app.state.
"""
from fastapi import Request

from auth import TokenService
from mailer import Mailer
from question_store import QuestionStore
from user_store import UserStore
from verification import VerificationCodeService


def get_users(request: Request) -> UserStore:
    return request.app.state.users


def get_questions(request: Request) -> QuestionStore:
    return request.app.state.questions


def get_codes(request: Request) -> VerificationCodeService:
    return request.app.state.codes


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens
