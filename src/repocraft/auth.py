"""GitHub OAuth sign-in and the request dependencies built on the session."""

import logging
import secrets
from typing import NamedTuple

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from repocraft import config, github, users
from repocraft.database import User, get_db

logger = logging.getLogger(__name__)


class AuthRequiredError(Exception):
    def __init__(self, message: str = "Unauthorized"):
        self.message = message
        super().__init__(message)


class UserNotFoundError(Exception):
    pass


class SessionUser(NamedTuple):
    access_token: str
    provider_id: str
    login: str | None


def require_session(request: Request) -> SessionUser:
    access_token = request.session.get("access_token")
    provider_id = request.session.get("provider_id")
    if not access_token or not provider_id:
        raise AuthRequiredError()
    return SessionUser(access_token, provider_id, request.session.get("login"))


async def current_user(
    session: SessionUser = Depends(require_session),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await users.get_user_by_provider_id(db, session.provider_id)
    if user is None:
        # Signed session without a profile row: the database lost the user.
        logger.warning(f"No user record for provider id {session.provider_id}")
        raise UserNotFoundError("User not found")
    return user


router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/login")
async def login(request: Request) -> RedirectResponse:
    state = secrets.token_urlsafe(24)
    request.session["oauth_state"] = state
    redirect_uri = str(request.url_for("auth_callback"))
    return RedirectResponse(github.authorize_url(state, redirect_uri))


@router.get("/callback", name="auth_callback")
async def callback(
    request: Request,
    state: str = "",
    code: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    expected = request.session.pop("oauth_state", None)
    if not expected or not secrets.compare_digest(state, expected):
        raise AuthRequiredError("OAuth state mismatch")
    if not code:
        # GitHub sends ?error=access_denied when the user declines.
        logger.info(f"OAuth callback without code: {error}")
        raise AuthRequiredError(f"GitHub sign-in failed: {error or 'missing code'}")

    redirect_uri = str(request.url_for("auth_callback"))
    async with httpx.AsyncClient(timeout=config.get_config().github.github_timeout) as client:
        access_token = await github.exchange_code(client, code, redirect_uri)
        profile = await github.fetch_authenticated_user(client, access_token)

    provider_id = str(profile["id"])
    await users.upsert_user(
        db,
        provider_id,
        email=profile.get("email"),
        name=profile.get("name") or profile.get("login"),
        avatar=profile.get("avatar_url"),
    )
    request.session.update(
        access_token=access_token,
        provider_id=provider_id,
        login=profile.get("login"),
    )
    logger.info(f"User {profile.get('login')} signed in")
    return RedirectResponse("/", status_code=303)


@router.post("/logout")
async def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "ok"}
