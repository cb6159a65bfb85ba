# aliyundrive/limiter.py
import asyncio
import logging
import time
from enum import Enum
from typing import Dict, Optional

from .constants import LINK_RATE_LIMIT, LIST_RATE_LIMIT, OTHER_RATE_LIMIT


class LimiterType(str, Enum):
    LIST = "list"
    LINK = "link"
    OTHER = "other"


DEFAULT_INTERVALS = {
    LimiterType.LIST: 1 / LIST_RATE_LIMIT,
    LimiterType.LINK: 1 / LINK_RATE_LIMIT,
    LimiterType.OTHER: 1 / OTHER_RATE_LIMIT,
}


class SimpleLimiter:
    """
    Enforces a minimum interval between the starts of consecutive calls.
    Waiters are admitted one at a time in arrival order (asyncio.Lock is FIFO),
    and the lock is held across the sleep so every waiter measures from the
    previous waiter's actual start.
    """

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self.last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self):
        async with self._lock:
            if self.last is not None:
                delay = self.last + self.min_interval - time.monotonic()
                if delay > 0:
                    await asyncio.sleep(delay)
            self.last = time.monotonic()


class AccountLimiter:
    """The three request classes of one account."""

    def __init__(self, intervals: Optional[Dict[LimiterType, float]] = None):
        intervals = {**DEFAULT_INTERVALS, **(intervals or {})}
        self.used_by = 0
        self.limiters = {kind: SimpleLimiter(intervals[kind]) for kind in LimiterType}

    async def wait(self, kind: LimiterType):
        await self.limiters[kind].wait()


class LimiterRegistry:
    """
    Reference-counted limiters keyed by account id.
    Providers authenticated as the same account share one limiter when they are
    built with the same registry; a limiter is dropped once its last user releases it.
    """

    def __init__(self, intervals: Optional[Dict[LimiterType, float]] = None):
        self.intervals = intervals
        self._limiters: Dict[str, AccountLimiter] = {}

    def acquire(self, account_id: str) -> AccountLimiter:
        limiter = self._limiters.get(account_id)
        if limiter is None:
            limiter = self._limiters[account_id] = AccountLimiter(self.intervals)
            logging.debug(f"Created rate limiter for account '{account_id}'")
        limiter.used_by += 1
        return limiter

    def release(self, account_id: str):
        limiter = self._limiters.get(account_id)
        if limiter is None:
            return
        limiter.used_by -= 1
        if limiter.used_by <= 0:
            del self._limiters[account_id]
            logging.debug(f"Evicted rate limiter for account '{account_id}'")

    def get(self, account_id: str) -> Optional[AccountLimiter]:
        return self._limiters.get(account_id)

    def __contains__(self, account_id: str) -> bool:
        return account_id in self._limiters

    def __len__(self) -> int:
        return len(self._limiters)
