from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .config import Settings

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff and jitter.

    ``max_attempts`` counts the first call, so the default of 3 means one call
    plus two retries. The wait before retry ``n`` (0-based) is
    ``base_delay * multiplier ** n`` plus up to ``jitter`` seconds.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    multiplier: float = 2.0
    jitter: float = 0.5
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be at least 1")
        if self.base_delay < 0 or self.jitter < 0:
            raise ValueError("RetryPolicy delays must be non-negative")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> RetryPolicy:
        params = {
            "max_attempts": settings.retry_attempts,
            "base_delay": settings.retry_base_delay,
        }
        params.update(overrides)
        return cls(**params)

    def delay_for(self, attempt: int) -> float:
        wait = self.base_delay * (self.multiplier ** attempt)
        if self.jitter:
            wait += random.uniform(0.0, self.jitter)
        return wait

    async def run(self, fn: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        last_exc: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except self.retry_on as exc:
                last_exc = exc
                if attempt + 1 >= self.max_attempts:
                    break
                wait = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %s/%s): %s; retrying in %.1fs",
                    label,
                    attempt + 1,
                    self.max_attempts,
                    exc,
                    wait,
                )
                await self.sleep(wait)
        assert last_exc is not None
        logger.error("%s failed after %s attempts: %s", label, self.max_attempts, last_exc)
        raise last_exc
