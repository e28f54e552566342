"""
Session countdown.

Derives the time left on a session from its absolute expiry and fires
one-time notifications as the session runs out: a warning at five
minutes, another at one minute, and a final expiry notice followed by the
logout callback.
"""

import asyncio
import time
from enum import Enum
from typing import Callable

FIVE_MINUTES_MS = 5 * 60 * 1000
ONE_MINUTE_MS = 60 * 1000
# A first tick this far below a threshold no longer counts as crossing it
WARNING_WINDOW_MS = 5000


class SessionEvent(str, Enum):
    FIVE_MINUTE_WARNING = "five_minute_warning"
    ONE_MINUTE_WARNING = "one_minute_warning"
    EXPIRED = "expired"


def now_ms() -> int:
    return int(time.time() * 1000)


def remaining_ms(expires_at: int, now: int | None = None) -> int:
    """Milliseconds left before expires_at, never negative"""
    if now is None:
        now = now_ms()
    return max(0, expires_at - now)


def format_remaining(ms: int) -> str:
    """MM:SS"""
    if ms <= 0:
        return "00:00"
    total_seconds = ms // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class SessionTimer:
    """
    Polling countdown for one session.

    Call tick() once a second (run() does this). Calling update() with a
    different expiry, as happens on login, re-arms every notification.
    """

    def __init__(
        self,
        on_expired: Callable[[], None],
        notify: Callable[[SessionEvent], None] | None = None,
        expires_at: int | None = None,
        is_logged_in: bool = False,
    ):
        self.on_expired = on_expired
        self.notify = notify or (lambda event: None)
        self.expires_at = expires_at
        self.is_logged_in = is_logged_in
        self.remaining_ms = 0
        self.is_expired = False
        self._reset()

    def _reset(self) -> None:
        self._fired: set[SessionEvent] = set()
        self._last_remaining: int | None = None
        self.is_expired = False

    def update(self, expires_at: int | None, is_logged_in: bool) -> None:
        if expires_at != self.expires_at or is_logged_in != self.is_logged_in:
            self._reset()
        self.expires_at = expires_at
        self.is_logged_in = is_logged_in

    @property
    def remaining_text(self) -> str:
        return format_remaining(self.remaining_ms)

    def _crossed(self, threshold: int, remaining: int) -> bool:
        if remaining > threshold:
            return False
        if self._last_remaining is None:
            return remaining > threshold - WARNING_WINDOW_MS
        return self._last_remaining > threshold

    def _fire(self, event: SessionEvent) -> None:
        self._fired.add(event)
        self.notify(event)

    def tick(self, now: int | None = None) -> int:
        """Recompute the remaining time and fire any due notification"""
        if not self.expires_at or not self.is_logged_in:
            self.remaining_ms = 0
            self.is_expired = False
            return 0

        remaining = remaining_ms(self.expires_at, now)
        self.remaining_ms = remaining

        if remaining <= 0:
            self.is_expired = True
            if SessionEvent.EXPIRED not in self._fired:
                self._fire(SessionEvent.EXPIRED)
                self.on_expired()
            self._last_remaining = remaining
            return remaining

        if (
            SessionEvent.FIVE_MINUTE_WARNING not in self._fired
            and self._crossed(FIVE_MINUTES_MS, remaining)
        ):
            self._fire(SessionEvent.FIVE_MINUTE_WARNING)

        if (
            SessionEvent.ONE_MINUTE_WARNING not in self._fired
            and self._crossed(ONE_MINUTE_MS, remaining)
        ):
            self._fire(SessionEvent.ONE_MINUTE_WARNING)

        self._last_remaining = remaining
        return remaining

    async def run(self, interval: float = 1.0) -> None:
        """Tick every interval seconds until the session expires or logs out"""
        while True:
            self.tick()
            if self.is_expired or not self.is_logged_in:
                return
            await asyncio.sleep(interval)
