"""Tests for cicd_worker.poller.poll_until."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, patch

import pytest

from cicd_worker.models import PollOutcome
from cicd_worker.poller import poll_until


async def _always_true() -> bool:
    return True


async def _always_false() -> bool:
    return False


class TestPollUntil:
    """Tests for convergence and timeout behaviour."""

    async def test_converges_immediately_without_sleeping(self) -> None:
        with patch("cicd_worker.poller.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            outcome = await poll_until(_always_true, interval=0.5, deadline=5.0)

        assert outcome is PollOutcome.CONVERGED
        mock_sleep.assert_not_awaited()

    async def test_times_out_within_one_interval_of_deadline(self) -> None:
        interval, deadline = 0.1, 0.3

        start = time.monotonic()
        outcome = await poll_until(_always_false, interval=interval, deadline=deadline)
        elapsed = time.monotonic() - start

        assert outcome is PollOutcome.TIMED_OUT
        assert deadline <= elapsed < deadline + interval

    async def test_converges_once_predicate_holds(self) -> None:
        calls = 0

        async def third_time_lucky() -> bool:
            nonlocal calls
            calls += 1
            return calls >= 3

        outcome = await poll_until(third_time_lucky, interval=0.01, deadline=1.0)

        assert outcome is PollOutcome.CONVERGED
        assert calls == 3

    async def test_sleeps_interval_between_evaluations(self) -> None:
        results = iter([False, False, True])

        async def predicate() -> bool:
            return next(results)

        with patch("cicd_worker.poller.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            outcome = await poll_until(predicate, interval=0.5, deadline=5.0)

        assert outcome is PollOutcome.CONVERGED
        assert mock_sleep.await_count == 2
        for call in mock_sleep.await_args_list:
            assert 0 < call.args[0] <= 0.5

    async def test_zero_deadline_evaluates_once(self) -> None:
        calls = 0

        async def predicate() -> bool:
            nonlocal calls
            calls += 1
            return False

        outcome = await poll_until(predicate, interval=0.1, deadline=0)

        assert outcome is PollOutcome.TIMED_OUT
        assert calls == 1

    async def test_predicate_errors_propagate(self) -> None:
        async def broken() -> bool:
            raise OSError("status command unavailable")

        with pytest.raises(OSError, match="status command unavailable"):
            await poll_until(broken, interval=0.1, deadline=1.0)

    @pytest.mark.parametrize(("interval", "deadline"), [(0, 1.0), (-0.1, 1.0), (0.1, -1.0)])
    async def test_rejects_invalid_policy(self, interval: float, deadline: float) -> None:
        with pytest.raises(ValueError):
            await poll_until(_always_true, interval=interval, deadline=deadline)
