"""
Dialog WebSocket protocol.

Defines the JSON messages exchanged between the selection dialog and the
setup process over the session channel.

Protocol Messages:
Dialog -> Server:
  - registerSession: Bind the channel to a session id
  - selectEnvironment: Choose an environment (terminal)
  - cancel: Close the dialog without a choice (terminal)
  - switchAccount: Log out and sign in with another account (terminal)
  - refreshList: Re-query the environment list
  - retryInit: Retry backend service initialization once

Server -> Dialog:
  - selected: Confirm the chosen environment
  - listRefreshed: Fresh environment list and error context
  - error: A message was rejected; the session stays open
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


class ProtocolError(ValueError):
    """Raised when a dialog message is malformed or unknown."""


# ============================================================================
# Dialog -> Server Messages
# ============================================================================

@dataclass
class RegisterSessionMessage:
    session_id: Optional[str] = None
    type: str = field(default="registerSession", init=False)


@dataclass
class SelectEnvironmentMessage:
    env_id: str
    type: str = field(default="selectEnvironment", init=False)


@dataclass
class CancelMessage:
    type: str = field(default="cancel", init=False)


@dataclass
class SwitchAccountMessage:
    type: str = field(default="switchAccount", init=False)


@dataclass
class RefreshListMessage:
    type: str = field(default="refreshList", init=False)


@dataclass
class RetryInitMessage:
    type: str = field(default="retryInit", init=False)


ClientMessage = Union[
    RegisterSessionMessage,
    SelectEnvironmentMessage,
    CancelMessage,
    SwitchAccountMessage,
    RefreshListMessage,
    RetryInitMessage,
]


# ============================================================================
# Server -> Dialog Messages
# ============================================================================

@dataclass
class SelectedMessage:
    env_id: str
    type: str = field(default="selected", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "envId": self.env_id}


@dataclass
class ListRefreshedMessage:
    success: bool
    envs: list[dict] = field(default_factory=list)
    error: Optional[str] = None
    error_context: Optional[dict] = None
    type: str = field(default="listRefreshed", init=False)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "type": self.type,
            "success": self.success,
            "envs": self.envs,
        }
        if self.error:
            data["error"] = self.error
        if self.error_context is not None:
            data["errorContext"] = self.error_context
        return data


@dataclass
class ErrorMessage:
    message: str
    type: str = field(default="error", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "message": self.message}


ServerMessage = Union[SelectedMessage, ListRefreshedMessage, ErrorMessage]


def _env_id(data: dict) -> str:
    env_id = data.get("envId")
    if not isinstance(env_id, str) or not env_id.strip():
        raise ProtocolError("selectEnvironment requires a non-empty 'envId'")
    return env_id.strip()


def parse_client_message(data: Any) -> ClientMessage:
    """
    Parse a message from the dialog.

    Args:
        data: JSON data from WebSocket

    Returns:
        Parsed message object

    Raises:
        ProtocolError: If the payload is not an object, or the type is
            missing, unknown, or lacks a required field
    """
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    if "type" not in data:
        raise ProtocolError("Missing message type")

    msg_type = data["type"]

    if msg_type == "registerSession":
        return RegisterSessionMessage(session_id=data.get("sessionId"))
    elif msg_type in ("selectEnvironment", "select"):
        return SelectEnvironmentMessage(env_id=_env_id(data))
    elif msg_type == "cancel":
        return CancelMessage()
    elif msg_type == "switchAccount":
        return SwitchAccountMessage()
    elif msg_type in ("refreshList", "refreshEnvList"):
        return RefreshListMessage()
    elif msg_type == "retryInit":
        return RetryInitMessage()
    else:
        raise ProtocolError(f"Unknown message type: {msg_type}")
