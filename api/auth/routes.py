"""
Authentication endpoints for login, logout, and the current session

HTTP   URI              Action
----   ---              ------
POST   /api/login       Check credentials and open a session
POST   /api/logout      Close the current session
GET    /api/user        Current session user and expiry
"""
from fastapi import APIRouter, Response

from core.deps import SettingsDep
from core.models import MessageResponse
from core.logger import logger
from api.auth.models import LoginCredentials, UserPublic, UserStatus
from api.auth.deps import CurrentUser, OptionalUser, SessionStoreDep
from api.auth.timer import remaining_ms
import api.auth.services as auth_services

router = APIRouter(tags=["Authentication"])


@router.post("/login", response_model=UserPublic)
def login(
    settings: SettingsDep,
    store: SessionStoreDep,
    response: Response,
    credentials: LoginCredentials,
) -> UserPublic:
    """
    Login with username and password

    Opens a session that lasts SESSION_MINUTES and sets the session cookie.
    The signed token is also accepted as a Bearer token.

    Raises:
        401: Invalid credentials
    """
    session, token = auth_services.login(settings, store, credentials)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_MINUTES * 60,
        httponly=True,
        samesite="lax",
    )
    return UserPublic(
        id=session.id,
        username=session.username,
        expires_at=session.expires_at,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    settings: SettingsDep,
    store: SessionStoreDep,
    response: Response,
    user: OptionalUser,
) -> MessageResponse:
    """
    Logout and revoke the current session, if any
    """
    if user is not None:
        store.revoke(user.session_id)
        logger.info("User %s logged out", user.username)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return MessageResponse(message="Logged out successfully")


@router.get("/user", response_model=UserStatus)
def get_user(current_user: CurrentUser) -> UserStatus:
    """
    Get the logged in user with the session expiry

    Raises:
        401: No live session
    """
    return UserStatus(
        id=current_user.id,
        username=current_user.username,
        expires_at=current_user.expires_at,
        remaining_ms=remaining_ms(current_user.expires_at),
    )
