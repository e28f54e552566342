"""
Authentication services: credential checks and the login session store
"""
import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from fastapi import HTTPException, status

from api.auth.models import LoginCredentials, SessionUser
from api.auth.timer import now_ms
from core.config import Settings
from core.logger import logger
from core.security import (
    create_session_token,
    generate_secure_token,
    hash_password,
    verify_password,
)


@dataclass(frozen=True)
class Credential:
    user_id: str
    username: str
    hashed_password: str


def parse_credentials(raw: str) -> list[tuple[str, str]]:
    """
    Parse "user:password,user2:password2".
    Entries without a colon or with an empty part are skipped.
    """
    pairs = []
    for entry in raw.split(","):
        username, sep, password = entry.strip().partition(":")
        if not sep or not username or not password:
            if entry.strip():
                logger.warning("Ignoring malformed credential entry for %r", username)
            continue
        pairs.append((username, password))
    return pairs


@lru_cache(maxsize=8)
def load_credentials(raw: str) -> dict[str, Credential]:
    """Hash the configured credentials once per distinct setting value"""
    credentials = {}
    for username, password in parse_credentials(raw):
        credentials[username] = Credential(
            user_id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"locker:{username}")),
            username=username,
            hashed_password=hash_password(password),
        )
    return credentials


def authenticate_user(
    settings: Settings, username: str, password: str
) -> Credential | None:
    credential = load_credentials(settings.AUTH_CREDENTIALS).get(username)
    if credential is None:
        return None
    if not verify_password(password, credential.hashed_password):
        return None
    return credential


class SessionStore:
    """
    In-process session store. Sessions carry an absolute expiry; expired
    entries are dropped on lookup and by sweep().
    """

    def __init__(self):
        self._sessions: dict[str, SessionUser] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self, user_id: str, username: str, lifetime: timedelta, now: int | None = None
    ) -> SessionUser:
        if now is None:
            now = now_ms()
        session = SessionUser(
            session_id=generate_secure_token(),
            id=user_id,
            username=username,
            expires_at=now + int(lifetime.total_seconds() * 1000),
        )
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str, now: int | None = None) -> SessionUser | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if now is None:
            now = now_ms()
        if session.expires_at <= now:
            self._sessions.pop(session_id, None)
            return None
        return session

    def revoke(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def sweep(self, now: int | None = None) -> int:
        """Remove expired sessions, returning how many were dropped"""
        if now is None:
            now = now_ms()
        expired = [sid for sid, s in list(self._sessions.items()) if s.expires_at <= now]
        for sid in expired:
            self._sessions.pop(sid, None)
        return len(expired)

    def clear(self) -> None:
        self._sessions.clear()


session_store = SessionStore()


async def sweep_sessions_periodically(store: SessionStore, interval_seconds: float) -> None:
    """Background task started by the application lifespan"""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = store.sweep()
        except Exception as e:
            logger.error("Session sweep failed: %s", e)
            continue
        if removed:
            logger.info("Pruned %d expired sessions", removed)


def login(
    settings: Settings, store: SessionStore, credentials: LoginCredentials
) -> tuple[SessionUser, str]:
    """
    Check credentials and open a session.

    Returns:
        The session and its signed token

    Raises:
        HTTPException: 401 on a bad username or password
    """
    credential = authenticate_user(settings, credentials.username, credentials.password)
    if credential is None:
        logger.info("Failed login for %s", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    session = store.create(
        credential.user_id,
        credential.username,
        timedelta(minutes=settings.SESSION_MINUTES),
    )
    token = create_session_token(
        {"sub": session.id, "sid": session.session_id, "username": session.username},
        datetime.fromtimestamp(session.expires_at / 1000, tz=timezone.utc),
    )
    logger.info("User %s logged in", session.username)
    return session, token
