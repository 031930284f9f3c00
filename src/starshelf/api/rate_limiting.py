from asyncio import AbstractEventLoop, Lock, get_running_loop, sleep
from time import monotonic
from typing import Callable


class RateLimiter:
    """Client-side token bucket in front of the GitHub REST API.

    Every request costs one token. Tokens come back continuously at the hourly
    quota rate, and :meth:`observe` drains the bucket down to the quota GitHub
    reports as remaining, so a nearly spent token slows down before it starts
    collecting 403s.
    """

    def __init__(
        self,
        *,
        capacity: int,
        refill_per_hour: int,
        clock: Callable[[], float] = monotonic,
    ):
        self.capacity = capacity
        self._per_second = refill_per_hour / 3600
        self._clock = clock
        self._tokens = float(capacity)
        self._stamp = clock()
        self._lock: Lock | None = None
        self._lock_loop: AbstractEventLoop | None = None

    @property
    def available(self) -> float:
        self._top_up()
        return self._tokens

    def _top_up(self) -> None:
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._stamp) * self._per_second)
        self._stamp = now

    def _loop_lock(self) -> Lock:
        # an asyncio.Lock is bound to the loop it first waits on
        loop = get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock, self._lock_loop = Lock(), loop
        return self._lock

    def delay_for(self, cost: int = 1) -> float:
        """Seconds until ``cost`` tokens are available (0 when they already are)."""
        self._top_up()
        missing = cost - self._tokens
        return missing / self._per_second if missing > 0 else 0.0

    async def acquire(self, cost: int = 1) -> None:
        async with self._loop_lock():
            delay = self.delay_for(cost)
            while delay > 0:
                await sleep(delay)
                delay = self.delay_for(cost)
            self._tokens -= cost

    def observe(self, remaining: str | int | None) -> None:
        """Clamp the bucket to an ``X-RateLimit-Remaining`` value."""
        try:
            left = int(remaining)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return
        self._top_up()
        self._tokens = min(self._tokens, float(max(left, 0)))
