#!/usr/bin/env python3
"""
Per-catalog request pacing and ban backoff

One limiter instance per catalog, owned by that catalog's client. Every
limiter reserves its slot under its own lock and sleeps outside it, so
concurrent callers queue behind each other instead of each under-counting
the window.

Waits observe an optional threading.Event; setting it makes the waiting
caller raise RequestCancelled instead of issuing the request.
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional, Tuple

from anime_multisource.constants import (
    ANILIST_MAX_PER_MINUTE,
    ANIDB_DEFAULT_RATE_LIMIT_MS,
    ANIDB_SLOW_RATE_LIMIT_MS,
    ANIDB_DAILY_SOFT_CAP,
    JIKAN_MIN_SPACING_MS,
)
from anime_multisource.errors import RequestCancelled

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


def check_cancelled(cancel: Optional[threading.Event], label: str = 'request'):
    """Raise RequestCancelled if the caller has abandoned the request"""
    if cancel is not None and cancel.is_set():
        raise RequestCancelled(f"{label} cancelled")


def pause(seconds: float,
          cancel: Optional[threading.Event] = None,
          sleep: Callable[[float], None] = time.sleep,
          label: str = 'request'):
    """Sleep for seconds, waking early (and raising) if cancel is set"""
    check_cancelled(cancel, label)
    if seconds <= 0:
        return
    if cancel is None:
        sleep(seconds)
    elif cancel.wait(seconds):
        raise RequestCancelled(f"{label} cancelled while waiting")


def retry_after_delay(headers, fallback: float) -> float:
    """Seconds from a Retry-After header (delta or HTTP date), else fallback"""
    value = (headers or {}).get('Retry-After')
    if not value:
        return fallback
    value = str(value).strip()
    if value.isdigit():
        seconds = float(value)
        return seconds if seconds > 0 else fallback
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return fallback
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - datetime.now(timezone.utc)).total_seconds()
    return delta if delta > 0 else fallback


class SlidingWindowLimiter:
    """Hard cap of N requests per rolling minute plus even 60/N spacing"""

    def __init__(self,
                 max_per_minute: int = ANILIST_MAX_PER_MINUTE,
                 name: str = 'AniList',
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if max_per_minute < 1:
            raise ValueError("max_per_minute must be at least 1")
        self.name = name
        self.max_per_minute = max_per_minute
        self.min_spacing = WINDOW_SECONDS / max_per_minute
        self.clock = clock
        self.sleep = sleep
        self._window = deque()
        self._last_request: Optional[float] = None
        self._lock = threading.Lock()
        self.total_requests = 0
        self.total_wait = 0.0

    def reserve(self) -> float:
        """Claim the next slot; returns how long the caller must wait for it"""
        with self._lock:
            now = self.clock()
            while self._window and now - self._window[0] >= WINDOW_SECONDS:
                self._window.popleft()

            wait = 0.0
            if self._last_request is not None:
                wait = max(0.0, self._last_request + self.min_spacing - now)
            if len(self._window) >= self.max_per_minute:
                # Oldest reservation must leave the window first
                wait = max(wait, self._window[-self.max_per_minute] + WINDOW_SECONDS - now)

            scheduled = now + wait
            self._window.append(scheduled)
            self._last_request = scheduled
            self.total_requests += 1
            self.total_wait += wait
            return wait

    def acquire(self, cancel: Optional[threading.Event] = None):
        wait = self.reserve()
        if wait > 0:
            logger.info(f"{self.name} rate limiting: waiting {wait * 1000:.0f} ms "
                        f"({len(self._window)} requests in current window)")
        pause(wait, cancel, self.sleep, self.name)

    def stats(self) -> dict:
        return {
            'total_requests': self.total_requests,
            'total_wait_seconds': round(self.total_wait, 1),
        }


class MinSpacingLimiter:
    """Fixed minimum gap between consecutive requests"""

    def __init__(self,
                 min_spacing_ms: int = JIKAN_MIN_SPACING_MS,
                 name: str = 'Jikan',
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.name = name
        self.min_spacing = min_spacing_ms / 1000.0
        self.clock = clock
        self.sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = threading.Lock()
        self.total_requests = 0
        self.total_wait = 0.0

    def reserve(self) -> float:
        with self._lock:
            now = self.clock()
            wait = 0.0
            if self._last_request is not None:
                wait = max(0.0, self._last_request + self.min_spacing - now)
            self._last_request = now + wait
            self.total_requests += 1
            self.total_wait += wait
            return wait

    def acquire(self, cancel: Optional[threading.Event] = None):
        wait = self.reserve()
        if wait > 0:
            logger.debug(f"{self.name} rate limiting: waiting {wait * 1000:.0f} ms before request")
        pause(wait, cancel, self.sleep, self.name)

    def stats(self) -> dict:
        return {
            'total_requests': self.total_requests,
            'total_wait_seconds': round(self.total_wait, 1),
        }


def _utc_today():
    return datetime.now(timezone.utc).date()


class AniDbRateLimiter:
    """
    Minimum spacing that slows down after a daily soft cap.

    The configured spacing applies until ANIDB_DAILY_SOFT_CAP successful
    requests have been made on the current UTC day; after that the spacing is
    max(slow spacing, configured spacing). The counter resets when the UTC
    date changes.
    """

    def __init__(self,
                 rate_limit_ms: int = ANIDB_DEFAULT_RATE_LIMIT_MS,
                 soft_cap: int = ANIDB_DAILY_SOFT_CAP,
                 slow_rate_limit_ms: int = ANIDB_SLOW_RATE_LIMIT_MS,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 today: Callable = _utc_today):
        self.rate_limit_ms = rate_limit_ms
        self.soft_cap = soft_cap
        self.slow_rate_limit_ms = slow_rate_limit_ms
        self.clock = clock
        self.sleep = sleep
        self.today = today
        self._lock = threading.Lock()
        self._last_request: Optional[float] = None
        self._count_date = today()
        self.daily_count = 0
        self.total_wait = 0.0

    def _roll_date(self):
        current = self.today()
        if current != self._count_date:
            self._count_date = current
            self.daily_count = 0
            logger.info(f"AniDB daily counter reset for {current.isoformat()}")

    @property
    def slow_mode(self) -> bool:
        with self._lock:
            self._roll_date()
            return self.daily_count >= self.soft_cap

    def effective_spacing_ms(self) -> int:
        if self.slow_mode:
            return max(self.slow_rate_limit_ms, self.rate_limit_ms)
        return self.rate_limit_ms

    def reserve(self) -> Tuple[float, bool]:
        with self._lock:
            self._roll_date()
            slow = self.daily_count >= self.soft_cap
            spacing_ms = max(self.slow_rate_limit_ms, self.rate_limit_ms) if slow else self.rate_limit_ms
            now = self.clock()
            wait = 0.0
            if self._last_request is not None:
                wait = max(0.0, self._last_request + spacing_ms / 1000.0 - now)
            self._last_request = now + wait
            self.total_wait += wait
            return wait, slow

    def acquire(self, cancel: Optional[threading.Event] = None):
        wait, slow = self.reserve()
        mode = 'slow' if slow else 'fast'
        if wait > 0:
            logger.info(f"AniDB rate limiting: waiting {wait * 1000:.0f} ms "
                        f"(mode: {mode}, requests today: {self.daily_count})")
        else:
            logger.debug(f"AniDB rate limiting: no wait needed (mode: {mode})")
        pause(wait, cancel, self.sleep, 'AniDB')

    def record_success(self):
        with self._lock:
            self._roll_date()
            self.daily_count += 1

    def stats(self) -> dict:
        return {
            'requests_today': self.daily_count,
            'slow_mode': self.daily_count >= self.soft_cap,
            'total_wait_seconds': round(self.total_wait, 1),
        }


class BanState:
    """Timed suspension of outbound requests to one catalog"""

    def __init__(self, name: str = 'AniDB', clock: Callable[[], float] = time.time):
        self.name = name
        self.clock = clock
        self._lock = threading.Lock()
        self.until = 0.0
        self.reason = ''

    def ban(self, reason: str, duration: float):
        """Extend the ban to now + duration (never shortens an existing ban)"""
        with self._lock:
            until = self.clock() + duration
            if until > self.until:
                self.until = until
            self.reason = reason
            logger.warning(f"{self.name} ban/backoff set for {duration / 60:.1f} minutes "
                           f"due to {reason}")

    def remaining(self) -> Tuple[float, str]:
        """(seconds left, reason); (0, '') when not banned"""
        with self._lock:
            left = self.until - self.clock()
            if left > 0:
                return left, self.reason
            return 0.0, ''

    @property
    def active(self) -> bool:
        return self.remaining()[0] > 0
