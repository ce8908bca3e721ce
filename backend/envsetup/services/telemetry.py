"""
Setup telemetry.

Events are scheduled as background tasks so a slow or failing collector
never delays the setup flow. Delivery failures are logged at debug level.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from envsetup.config import Settings

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 200


class TelemetryReporter:
    """Fire-and-forget reporter for setup step events."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return not self.settings.telemetry_disabled

    def build_event(
        self,
        step: str,
        success: bool,
        user_id: Optional[str] = None,
        error: Optional[str] = None,
        **fields: Any,
    ) -> dict:
        data: dict[str, Any] = {
            "step": step,
            "success": "true" if success else "false",
            "user_id": user_id or "",
        }
        if error:
            data["error"] = error[:MAX_ERROR_LENGTH]
        for key, value in fields.items():
            if value is not None:
                data[key] = value
        return {
            "event": self.settings.telemetry_event,
            "timestamp": int(time.time() * 1000),
            "data": data,
        }

    def report_step(
        self,
        step: str,
        success: bool,
        user_id: Optional[str] = None,
        error: Optional[str] = None,
        **fields: Any,
    ) -> None:
        """Schedule one event. Returns immediately."""
        if not self.enabled:
            return
        event = self.build_event(step, success, user_id, error, **fields)
        try:
            task = asyncio.get_running_loop().create_task(self._send(event))
        except RuntimeError:
            logger.debug(f"No running loop, dropping telemetry event {step}")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, event: dict) -> None:
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                await client.post(self.settings.telemetry_url, json=event)
        except Exception as e:
            logger.debug(f"Telemetry delivery failed: {e}")

    async def flush(self) -> None:
        """Wait for pending deliveries (used before process exit)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
