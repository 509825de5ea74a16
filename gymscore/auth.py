from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request, HTTPException, Depends
from itsdangerous import URLSafeSerializer, BadSignature
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .records import CompetitionRecord
from .settings import settings

COOKIE_NAME = "gymscore_auth"

def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(settings.GYM_SECRET_KEY, salt="gymscore-auth")

@dataclass
class CurrentUser:
    id: int
    email: str

def set_login_cookie(request: Request, *, user_id: int, email: str) -> None:
    # the middleware copies this onto whatever response the route returns
    request.state.auth_token = _serializer().dumps({"id": user_id, "e": email})

def clear_login_cookie(request: Request) -> None:
    request.state.auth_logout = True

def get_current_user(request: Request) -> Optional[CurrentUser]:
    raw = request.cookies.get(COOKIE_NAME)
    if not raw:
        return None
    try:
        data = _serializer().loads(raw)
        return CurrentUser(id=int(data["id"]), email=str(data.get("e") or ""))
    except (BadSignature, KeyError, TypeError, ValueError):
        return None

def login_required(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    if not user:
        raise HTTPException(status_code=401, detail="Login required")
    return user

def assert_can_access_competition(user: CurrentUser, competition: CompetitionRecord) -> None:
    # competitions are private to the account that created them
    if competition.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not allowed for this competition")

class AuthCookieMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        if getattr(request.state, "auth_logout", False):
            response.delete_cookie(COOKIE_NAME)
            return response

        token = getattr(request.state, "auth_token", None)
        if token:
            response.set_cookie(
                COOKIE_NAME,
                token,
                max_age=settings.GYM_SESSION_HOURS * 3600,
                httponly=True,
                samesite="lax",
                secure=settings.GYM_COOKIE_SECURE,
            )
        return response
