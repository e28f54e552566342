"""
Authentication dependencies for protecting endpoints
"""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from core.deps import SettingsDep
from core.security import decode_token
from api.auth.models import SessionUser
from api.auth.services import SessionStore, session_store

# Bearer tokens are accepted alongside the session cookie
oauth2_scheme_optional = OAuth2PasswordBearer(
    tokenUrl="/api/login",
    auto_error=False
)


def get_session_store() -> SessionStore:
    return session_store


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]


def get_session_token(
    request: Request,
    settings: SettingsDep,
    token: Annotated[str | None, Depends(oauth2_scheme_optional)],
) -> str | None:
    """Session token from the Authorization header, else the cookie"""
    return token or request.cookies.get(settings.SESSION_COOKIE_NAME)


def optional_current_user(
    store: SessionStoreDep,
    token: Annotated[str | None, Depends(get_session_token)],
) -> SessionUser | None:
    """
    Get the live session for the request, or None

    Args:
        store: Session store
        token: Session token, if any

    Returns:
        The session, or None if there is no valid, unexpired session
    """
    if token is None:
        return None

    try:
        payload = decode_token(token)
    except JWTError:
        return None

    session_id: str | None = payload.get("sid")
    if session_id is None:
        return None
    return store.get(session_id)


def get_current_user(
    user: Annotated[SessionUser | None, Depends(optional_current_user)]
) -> SessionUser:
    """
    Get current authenticated user

    Raises:
        HTTPException: If there is no live session
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[SessionUser, Depends(get_current_user)]
OptionalUser = Annotated[SessionUser | None, Depends(optional_current_user)]
