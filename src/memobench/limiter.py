import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Token bucket holding at most ``burst`` tokens, refilled at ``rate`` tokens/s.

    Each acquire() reserves its token up front, letting the bucket go negative, then
    sleeps for as long as the debt takes to pay back. Reservations are made without
    yielding to the loop, so concurrent callers are served in call order and later
    callers wait longer.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()
        self._reservations = 0

    @property
    def tokens(self) -> float:
        return self._tokens

    def _advance(self, now: float) -> None:
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last = now

    def reserve(self) -> float:
        """Take one token and return how long the caller must wait before using it."""
        self._advance(self._clock())
        self._tokens -= 1
        self._reservations += 1
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self.rate

    async def acquire(self) -> float:
        """Wait for a token. Returns the seconds spent waiting."""
        delay = self.reserve()
        if delay <= 0:
            return 0.0
        ticket = self._reservations
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            # Refund only if nobody has reserved after us: later callers already
            # hold release times that assume this token is spent
            if ticket == self._reservations:
                self._advance(self._clock())
                self._tokens = min(float(self.burst), self._tokens + 1)
            raise
        return delay
