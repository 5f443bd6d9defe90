"""Retry a predicate until it holds or a deadline passes."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from cicd_worker.models import PollOutcome

Predicate = Callable[[], Awaitable[bool]]


async def poll_until(predicate: Predicate, interval: float, deadline: float) -> PollOutcome:
    """Evaluate ``predicate`` until it returns True or ``deadline`` seconds pass.

    The predicate is evaluated once immediately; if it already holds no
    sleep happens.  Afterwards it is re-evaluated every ``interval`` seconds.
    The last sleep is shortened so a final evaluation happens at the
    deadline, which keeps the elapsed time of a timeout within
    ``[deadline, deadline + interval)``.

    Exceptions raised by the predicate are not caught.
    """
    if interval <= 0:
        raise ValueError("interval must be > 0")
    if deadline < 0:
        raise ValueError("deadline must be >= 0")

    start = time.monotonic()
    if await predicate():
        return PollOutcome.CONVERGED

    while True:
        remaining = deadline - (time.monotonic() - start)
        if remaining <= 0:
            return PollOutcome.TIMED_OUT
        await asyncio.sleep(min(interval, remaining))
        if await predicate():
            return PollOutcome.CONVERGED
