"""
Mock infrastructure for environment setup testing.

Provides fake implementations of the external dependencies (cloud API,
auth, telemetry, dialog host, WebSocket) so the setup flow can be unit
tested without a network or a browser.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from envsetup.config import Settings
from envsetup.services.auth import AuthGateway, LoginState
from envsetup.services.cloud_client import CloudServiceClient
from envsetup.services.interactive.session import DialogOutcome, InteractiveSession
from envsetup.services.telemetry import TelemetryReporter


def _respond(value: Any) -> Any:
    if isinstance(value, BaseException):
        raise value
    return value


def env_list(*env_ids: str) -> dict:
    """Listing response in the top-level EnvList shape."""
    return {"EnvList": [{"EnvId": env_id, "Alias": env_id} for env_id in env_ids]}


# =============================================================================
# Mock Cloud Client
# =============================================================================


class FakeCloudClient(CloudServiceClient):
    """
    Scriptable CloudServiceClient.

    Usage:
        client = FakeCloudClient(listings=[env_list(), env_list("env-1")])
        await client.list_environments({})  # -> empty
        await client.list_environments({})  # -> env-1 (last entry repeats)

    Every value may be an exception instance, which is raised instead.
    """

    def __init__(
        self,
        check: Any = None,
        init: Any = None,
        promotions: Any = None,
        create: Any = None,
        listings: Optional[list[Any]] = None,
        simple_listings: Optional[list[Any]] = None,
        account: Any = None,
    ):
        self.check = check if check is not None else {"Initialized": True}
        self.init = init if init is not None else {}
        self.promotions = promotions if promotions is not None else {"Activities": []}
        self.create = create if create is not None else {"EnvId": "env-new"}
        self.listings = list(listings) if listings is not None else [env_list()]
        self.simple_listings = list(simple_listings) if simple_listings is not None else [env_list()]
        self.account = account if account is not None else {"Uin": "100001"}
        self.calls: list[tuple] = []

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    @staticmethod
    def _next(queue: list[Any]) -> Any:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def check_service(self) -> dict:
        self.calls.append(("check_service",))
        return _respond(self.check)

    async def init_service(self, source: str, channel: str) -> dict:
        self.calls.append(("init_service", source, channel))
        value = self.init
        if isinstance(value, list):
            value = self._next(value)
        return _respond(value)

    async def list_promotions(self, names: list[str]) -> dict:
        self.calls.append(("list_promotions", tuple(names)))
        return _respond(self.promotions)

    async def create_free_environment(self, alias: str, env_type: str, source: str) -> dict:
        self.calls.append(("create_free_environment", alias, env_type, source))
        return _respond(self.create)

    async def list_environments(self, filters: dict) -> dict:
        self.calls.append(("list_environments", filters))
        return _respond(self._next(self.listings))

    async def list_environments_simple(self) -> dict:
        self.calls.append(("list_environments_simple",))
        return _respond(self._next(self.simple_listings))

    async def describe_account(self) -> dict:
        self.calls.append(("describe_account",))
        return _respond(self.account)


# =============================================================================
# Mock Auth Gateway
# =============================================================================


class FakeAuthGateway(AuthGateway):
    """
    AuthGateway returning queued login states.

    Usage:
        auth = FakeAuthGateway([LoginState(user_id="a"), LoginState(user_id="b")])
        auth.calls  # [("get_login_state", False, False), ("logout",), ...]
    """

    def __init__(self, states: Optional[list[Optional[LoginState]]] = None):
        self.states = list(states) if states is not None else [LoginState(user_id="100001")]
        self.calls: list[tuple] = []

    async def get_login_state(
        self,
        ignore_cached_credentials: bool = False,
        from_login_page: bool = False,
    ) -> Optional[LoginState]:
        self.calls.append(("get_login_state", ignore_cached_credentials, from_login_page))
        return self.states.pop(0) if len(self.states) > 1 else self.states[0]

    async def logout(self) -> None:
        self.calls.append(("logout",))


# =============================================================================
# Recording Telemetry
# =============================================================================


@dataclass
class TelemetryRecord:
    step: str
    success: bool
    user_id: Optional[str]
    error: Optional[str]
    fields: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


class RecordingTelemetry(TelemetryReporter):
    """TelemetryReporter that records events instead of sending them."""

    def __init__(self):
        super().__init__(Settings(telemetry_disabled=True))
        self.events: list[TelemetryRecord] = []

    def report_step(self, step, success, user_id=None, error=None, **fields) -> None:
        self.events.append(TelemetryRecord(step, success, user_id, error, fields))

    def steps(self) -> list[str]:
        return [event.step for event in self.events]


# =============================================================================
# Mock Dialog Host
# =============================================================================

DialogScript = Callable[[InteractiveSession], Awaitable[None]]


def send(*messages: dict) -> DialogScript:
    """Script that feeds client messages into the session, in order."""
    async def script(session: InteractiveSession) -> None:
        for message in messages:
            await session.handle_message(message)
    return script


def close_channel() -> DialogScript:
    async def script(session: InteractiveSession) -> None:
        session.channel_lost()
    return script


class FakeDialogHost:
    """
    Stand-in for DialogHost that plays one script per shown dialog.

    Each script drives the session the way a browser would. A script may
    also be an exception, raised from collect_selection.
    """

    def __init__(self, registry, scripts: Optional[list[Any]] = None):
        self.registry = registry
        self.scripts = list(scripts or [])
        self.sessions: list[InteractiveSession] = []
        self.channels: list["MockWebSocket"] = []

    @property
    def shown(self) -> int:
        return len(self.sessions)

    async def collect_selection(
        self,
        session: InteractiveSession,
        timeout: Optional[float] = None,
    ) -> DialogOutcome:
        self.sessions.append(session)
        channel = MockWebSocket()
        self.channels.append(channel)
        try:
            await self.registry.bind_channel(session.session_id, channel)
            script = self.scripts.pop(0) if self.scripts else close_channel()
            if isinstance(script, BaseException):
                raise script
            await script(session)
            return await session.wait(timeout or 1.0)
        finally:
            await self.registry.remove(session.session_id)


# =============================================================================
# Mock WebSocket
# =============================================================================


class MockWebSocket:
    """
    Mock WebSocket for testing.

    Usage:
        ws = MockWebSocket()
        await ws.send_json({"type": "selected", "envId": "env-1"})
        assert ws.sent_messages[0]["type"] == "selected"
    """

    def __init__(self):
        self.connected: bool = True
        self.sent_messages: list[Any] = []
        self._incoming_queue: asyncio.Queue = asyncio.Queue()
        self._closed: bool = False
        self.close_code: int | None = None

    def add_incoming(self, message: Any):
        """Add a message to the incoming queue (simulates receiving)."""
        self._incoming_queue.put_nowait(message)

    async def send_json(self, data: Any):
        if self._closed:
            raise WebSocketClosed("WebSocket is closed")
        self.sent_messages.append(data)

    async def receive_json(self) -> Any:
        if self._closed:
            raise WebSocketClosed("WebSocket is closed")
        return await self._incoming_queue.get()

    async def close(self, code: int = 1000, reason: str = ""):
        self._closed = True
        self.connected = False
        self.close_code = code

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.sent_messages if isinstance(m, dict) and m.get("type") == msg_type]


class WebSocketClosed(Exception):
    """Raised when operating on a closed WebSocket."""
    pass
