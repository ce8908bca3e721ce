"""
Tests for the bounded poll helper.
"""

import pytest

from envsetup.services.setup.polling import poll_until


class Counter:
    def __init__(self, succeed_on: int):
        self.calls = 0
        self.succeed_on = succeed_on

    async def __call__(self) -> bool:
        self.calls += 1
        return self.calls >= self.succeed_on


@pytest.mark.asyncio
async def test_returns_true_on_first_success():
    check = Counter(succeed_on=1)
    assert await poll_until(check, interval=0.01, timeout=1.0) is True
    assert check.calls == 1


@pytest.mark.asyncio
async def test_retries_until_success():
    check = Counter(succeed_on=3)
    assert await poll_until(check, interval=0.01, timeout=1.0) is True
    assert check.calls == 3


@pytest.mark.asyncio
async def test_gives_up_at_deadline():
    check = Counter(succeed_on=1000)
    assert await poll_until(check, interval=0.01, timeout=0.05) is False
    assert 1 < check.calls < 1000


@pytest.mark.asyncio
async def test_zero_timeout_is_single_check():
    check = Counter(succeed_on=2)
    assert await poll_until(check, interval=0.01, timeout=0) is False
    assert check.calls == 1


@pytest.mark.asyncio
async def test_check_exceptions_propagate():
    async def broken() -> bool:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await poll_until(broken, interval=0.01, timeout=1.0)
