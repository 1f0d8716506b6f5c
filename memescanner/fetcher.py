"""
RESILIENT FETCHER

Every outbound HTTP GET of the scanner goes through here.

- Circuit breaker per upstream (fail fast while the upstream is down)
- Bounded retries with jittered exponential backoff
- Shared FIFO request queue (max 3 requests in flight)

fetch() never raises for network/status/body errors: it returns None and logs.
"""

import asyncio
import json
import logging
import random
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional
from urllib.parse import urlparse

import aiohttp

from .models import CircuitState

logger = logging.getLogger(__name__)

USER_AGENT = "MemeScanner/6.0"


class InvalidURLError(ValueError):
    """URL rejected before any network activity."""


class FetchError(Exception):
    """A single request attempt failed (timeout, non-2xx, malformed body)."""


def validate_url(url: str) -> str:
    """
    Accept only absolute http/https URLs.

    Raises:
        InvalidURLError: for any other scheme or an unparsable URL
    """
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        raise InvalidURLError(f"Invalid URL: {url}")

    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise InvalidURLError(f"Invalid URL: {url}")

    return parsed.geturl()


class CircuitBreaker:
    """
    Closed -> Open after `failure_threshold` consecutive failures.
    Open -> HalfOpen once `cooldown_seconds` passed since the last failure.
    HalfOpen admits one trial call at a time; `success_threshold`
    consecutive successes close the circuit, any failure reopens it.
    """

    def __init__(self, config: Dict = None, name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or {}
        self.name = name
        self._clock = clock

        self.failure_threshold = self.config.get('failure_threshold', 5)
        self.success_threshold = self.config.get('success_threshold', 2)
        self.cooldown_seconds = self.config.get('cooldown_seconds', 60)

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self.last_failure_time: Optional[float] = None
        self._trial_in_flight = False

        self.stats = {
            'opened': 0,
            'rejected': 0,
        }

    def allow_request(self) -> bool:
        """Return True if a call may go out now."""
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0)
            if elapsed < self.cooldown_seconds:
                self.stats['rejected'] += 1
                return False
            self.state = CircuitState.HALF_OPEN
            self.consecutive_successes = 0
            self._trial_in_flight = True
            logger.info(f"[CIRCUIT:{self.name}] Half-open - testing recovery")
            return True

        # HALF_OPEN: one trial at a time
        if self._trial_in_flight:
            self.stats['rejected'] += 1
            return False
        self._trial_in_flight = True
        return True

    def record_success(self):
        self.consecutive_failures = 0
        self._trial_in_flight = False

        if self.state == CircuitState.HALF_OPEN:
            self.consecutive_successes += 1
            if self.consecutive_successes >= self.success_threshold:
                self.state = CircuitState.CLOSED
                self.consecutive_successes = 0
                logger.info(f"[CIRCUIT:{self.name}] Closed - service recovered")

    def record_failure(self):
        self.consecutive_failures += 1
        self.last_failure_time = self._clock()
        self._trial_in_flight = False

        if self.state == CircuitState.HALF_OPEN:
            self._open()
        elif self.state == CircuitState.CLOSED and self.consecutive_failures >= self.failure_threshold:
            self._open()

    def release_trial(self):
        """Free the half-open slot of a call that ended without a result."""
        self._trial_in_flight = False

    def _open(self):
        self.state = CircuitState.OPEN
        self.consecutive_successes = 0
        self.stats['opened'] += 1
        logger.warning(f"[CIRCUIT:{self.name}] Opened - service failing")

    def get_stats(self) -> Dict:
        return {
            'name': self.name,
            'state': self.state.value,
            'consecutive_failures': self.consecutive_failures,
            'consecutive_successes': self.consecutive_successes,
            **self.stats,
        }


class RequestQueue:
    """
    FIFO queue of pending calls drained by up to `max_concurrent` in-flight
    workers. A queued call starts as soon as a slot frees.
    """

    def __init__(self, max_concurrent: int = 3):
        self.max_concurrent = max_concurrent
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def run(self, fn: Callable[[], Any]) -> Any:
        """Run coroutine factory `fn` once a slot is available."""
        await self._acquire()
        try:
            return await fn()
        finally:
            self._release()

    async def _acquire(self):
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over before the cancel landed
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self):
        # Hand the slot straight to the next waiter
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1


class ResilientFetcher:
    """
    JSON GET client for one upstream.

    Usage:
        queue = RequestQueue(3)
        dexscreener = ResilientFetcher(fetch_config, name="dexscreener", queue=queue)
        data = await dexscreener.fetch("https://api.dexscreener.com/...")
    """

    def __init__(self, config: Dict = None, name: str = "default",
                 queue: RequestQueue = None, breaker: CircuitBreaker = None,
                 session: aiohttp.ClientSession = None):
        self.config = config or {}
        self.name = name

        self.default_timeout = self.config.get('timeout', 10.0)
        self.default_retries = self.config.get('retries', 3)
        self.default_retry_delay = self.config.get('retry_delay', 1.0)

        self.queue = queue or RequestQueue(self.config.get('max_concurrent', 3))
        self.breaker = breaker or CircuitBreaker(self.config, name=name)
        self.session = session
        self._owns_session = session is None

        self.stats = {
            'requests': 0,
            'succeeded': 0,
            'failed': 0,
            'short_circuited': 0,
            'retries': 0,
        }

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self.session is None:
            self.session = aiohttp.ClientSession(headers={
                'User-Agent': USER_AGENT,
                'Accept': 'application/json',
            })

    async def close(self):
        """Close aiohttp session."""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def fetch(self, url: str, timeout: float = None, retries: int = None,
                    retry_delay: float = None, params: Dict = None) -> Optional[Any]:
        """
        GET `url` and decode the JSON body.

        Args:
            url: Absolute http(s) URL
            timeout: Per-attempt timeout in seconds
            retries: Maximum number of attempts
            retry_delay: Base backoff delay in seconds
            params: Optional query parameters

        Returns:
            Decoded JSON, or None on failure or open circuit

        Raises:
            InvalidURLError: if the URL is not http/https
        """
        safe_url = validate_url(url)
        timeout = self.default_timeout if timeout is None else timeout
        retries = max(1, self.default_retries if retries is None else retries)
        retry_delay = self.default_retry_delay if retry_delay is None else retry_delay

        if not self.breaker.allow_request():
            self.stats['short_circuited'] += 1
            logger.warning(f"[FETCH:{self.name}] Circuit breaker OPEN, skipping request")
            return None

        self.stats['requests'] += 1
        is_trial = self.breaker.state == CircuitState.HALF_OPEN
        try:
            return await self.queue.run(
                lambda: self._fetch_with_retry(safe_url, timeout, retries, retry_delay, params)
            )
        except asyncio.CancelledError:
            if is_trial:
                self.breaker.release_trial()
            raise

    async def _fetch_with_retry(self, url: str, timeout: float, retries: int,
                                retry_delay: float, params: Optional[Dict]) -> Optional[Any]:
        for attempt in range(1, retries + 1):
            try:
                data = await self._request_once(url, timeout, params)
            except (FetchError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == retries:
                    logger.error(f"[FETCH:{self.name}] Failed after {retries} attempts: {url} ({e})")
                    self.breaker.record_failure()
                    self.stats['failed'] += 1
                    return None

                delay = self._backoff_delay(retry_delay, attempt)
                self.stats['retries'] += 1
                logger.warning(f"[FETCH:{self.name}] Retry {attempt}/{retries} in {delay * 1000:.0f}ms... ({e})")
                await asyncio.sleep(delay)
                continue

            self.breaker.record_success()
            self.stats['succeeded'] += 1
            return data

        return None

    @staticmethod
    def _backoff_delay(base_delay: float, attempt: int) -> float:
        """base * 2^(attempt-1) plus jitter in [0, 0.3 * delay]."""
        delay = base_delay * (2 ** (attempt - 1))
        return delay + random.uniform(0, 0.3 * delay)

    async def _request_once(self, url: str, timeout: float, params: Optional[Dict]) -> Any:
        """One HTTP attempt. Raises FetchError on any failure."""
        await self._ensure_session()

        async with self.session.get(
            url,
            params=params,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={'Accept': 'application/json'},
        ) as response:
            if not 200 <= response.status < 300:
                raise FetchError(f"HTTP {response.status}")

            try:
                return await response.json(content_type=None)
            except (json.JSONDecodeError, ValueError) as e:
                raise FetchError(f"Malformed JSON: {e}")

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'circuit': self.breaker.get_stats(),
            'queue_active': self.queue.active,
            'queue_pending': self.queue.pending,
        }
