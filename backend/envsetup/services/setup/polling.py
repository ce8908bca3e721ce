import asyncio
from typing import Awaitable, Callable


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    interval: float,
    timeout: float,
) -> bool:
    """
    Call check until it returns True or the timeout elapses.

    Args:
        check: Async predicate; exceptions it raises propagate to the caller
        interval: Seconds between checks
        timeout: Maximum seconds to wait (0 = single check)

    Returns:
        True if check succeeded before the deadline, False otherwise
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(timeout, 0)

    while True:
        if await check():
            return True

        remaining = deadline - loop.time()
        if remaining <= 0:
            return False

        await asyncio.sleep(min(interval, remaining))
