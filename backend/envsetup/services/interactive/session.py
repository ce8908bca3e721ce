"""
Interactive selection session.

One InteractiveSession backs one open dialog. The setup flow awaits
wait(); the WebSocket endpoint feeds client messages into handle_message().
The pending wait resolves exactly once, on the first terminal message or
when the channel goes away.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from envsetup.services.interactive.protocol import (
    CancelMessage,
    ErrorMessage,
    ListRefreshedMessage,
    ProtocolError,
    RefreshListMessage,
    RegisterSessionMessage,
    RetryInitMessage,
    SelectedMessage,
    SelectEnvironmentMessage,
    ServerMessage,
    SwitchAccountMessage,
    parse_client_message,
)
from envsetup.services.setup.context import AccountInfo, EnvironmentRecord

logger = logging.getLogger(__name__)

RefreshHandler = Callable[[], Awaitable[ListRefreshedMessage]]


class OutcomeKind(str, Enum):
    SELECTED = "selected"
    CANCELLED = "cancelled"
    SWITCH = "switch"


@dataclass(frozen=True)
class DialogOutcome:
    kind: OutcomeKind
    env_id: Optional[str] = None

    @classmethod
    def cancelled(cls) -> "DialogOutcome":
        return cls(kind=OutcomeKind.CANCELLED)


@dataclass
class SessionView:
    """What the dialog renders: candidates, account and error context."""
    envs: list[EnvironmentRecord] = field(default_factory=list)
    account: AccountInfo = field(default_factory=AccountInfo)
    error_context: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "envs": [env.to_dict() for env in self.envs],
            "account": self.account.to_dict(),
            "errorContext": self.error_context,
        }


class InteractiveSession:
    """A single dialog instance paired with at most one channel."""

    def __init__(
        self,
        session_id: str,
        view: Optional[SessionView] = None,
        on_refresh: Optional[RefreshHandler] = None,
        on_retry: Optional[RefreshHandler] = None,
    ):
        self.session_id = session_id
        self.view = view or SessionView()
        self.on_refresh = on_refresh
        self.on_retry = on_retry
        self.channel: Any = None
        self._outcome: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._outcome.done()

    def _resolve(self, outcome: DialogOutcome) -> bool:
        if self._outcome.done():
            return False
        logger.info(f"Session {self.session_id} resolved: {outcome.kind.value}")
        self._outcome.set_result(outcome)
        return True

    async def wait(self, timeout: Optional[float] = None) -> DialogOutcome:
        """
        Wait for the session outcome.

        Args:
            timeout: Seconds to wait (None = until a terminal message or
                channel loss). Expiry resolves the session as cancelled.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._outcome), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Session {self.session_id} timed out after {timeout}s")
            self._resolve(DialogOutcome.cancelled())
            return self._outcome.result()

    def channel_lost(self) -> None:
        """The channel closed; an unresolved session counts as cancelled."""
        self.channel = None
        if self._resolve(DialogOutcome.cancelled()):
            logger.info(f"Session {self.session_id} channel closed before a choice")

    async def send(self, message: ServerMessage) -> None:
        if self.channel is None:
            logger.debug(f"Session {self.session_id} has no channel, dropping {message.type}")
            return
        try:
            await self.channel.send_json(message.to_dict())
        except Exception as e:
            logger.debug(f"Failed to send {message.type} to session {self.session_id}: {e}")

    def snapshot(self, success: bool = True, error: Optional[str] = None) -> ListRefreshedMessage:
        return ListRefreshedMessage(
            success=success,
            envs=[env.to_dict() for env in self.view.envs],
            error=error,
            error_context=self.view.error_context,
        )

    async def handle_message(self, data: Any) -> None:
        """
        Handle one client message.

        Malformed, unknown, or late messages are answered with an error
        message; they never close the session.
        """
        try:
            message = parse_client_message(data)
        except ProtocolError as e:
            logger.warning(f"Session {self.session_id} rejected message: {e}")
            await self.send(ErrorMessage(message=str(e)))
            return

        if isinstance(message, RegisterSessionMessage):
            if message.session_id and message.session_id != self.session_id:
                await self.send(ErrorMessage(message=f"Session id mismatch: {message.session_id}"))
                return
            await self.send(self.snapshot())
            return

        if self.resolved:
            await self.send(ErrorMessage(message="Session already resolved"))
            return

        if isinstance(message, SelectEnvironmentMessage):
            await self.send(SelectedMessage(env_id=message.env_id))
            self._resolve(DialogOutcome(kind=OutcomeKind.SELECTED, env_id=message.env_id))
        elif isinstance(message, CancelMessage):
            self._resolve(DialogOutcome.cancelled())
        elif isinstance(message, SwitchAccountMessage):
            self._resolve(DialogOutcome(kind=OutcomeKind.SWITCH))
        elif isinstance(message, RefreshListMessage):
            await self._refresh(self.on_refresh, "refreshList")
        elif isinstance(message, RetryInitMessage):
            await self._refresh(self.on_retry, "retryInit")

    async def _refresh(self, handler: Optional[RefreshHandler], action: str) -> None:
        if handler is None:
            await self.send(self.snapshot(success=False, error=f"{action} is not available"))
            return
        try:
            reply = await handler()
        except Exception as e:
            logger.error(f"Session {self.session_id} {action} failed: {e}")
            await self.send(self.snapshot(success=False, error=str(e)))
            return
        await self.send(reply)
