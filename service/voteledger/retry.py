# conflict retry policy, kept as data so it can be swapped in tests
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterator

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts: outer attempts per operation, and conditional writes per
        document inside one attempt.
    backoff: outer delay is attempt * backoff seconds.
    refresh_delay: pause before re-reading a document after a conflict.
    """

    max_attempts: int = 3
    backoff: float = 1.0
    refresh_delay: float = 0.5
    sleep: Sleep = field(default=asyncio.sleep, compare=False, repr=False)

    def attempts(self) -> Iterator[int]:
        return iter(range(1, max(1, self.max_attempts) + 1))

    def backoff_for(self, attempt: int) -> float:
        return attempt * self.backoff

    async def wait_backoff(self, attempt: int) -> None:
        await self.sleep(self.backoff_for(attempt))

    async def wait_refresh(self) -> None:
        await self.sleep(self.refresh_delay)
