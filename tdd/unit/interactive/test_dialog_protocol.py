"""
Tests for the dialog WebSocket protocol.

These tests DEFINE the message format between dialog and setup process.

Dialog -> Server:
- registerSession: {type, sessionId?}
- selectEnvironment: {type, envId}
- cancel / switchAccount / refreshList / retryInit: {type}

Server -> Dialog:
- selected: {type, envId}
- listRefreshed: {type, success, envs, error?, errorContext?}
- error: {type, message}
"""

import pytest

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
    SwitchAccountMessage,
    parse_client_message,
)


class TestParseClientMessage:

    def test_register_session(self):
        msg = parse_client_message({"type": "registerSession", "sessionId": "abc"})
        assert isinstance(msg, RegisterSessionMessage)
        assert msg.session_id == "abc"

    def test_select_environment(self):
        msg = parse_client_message({"type": "selectEnvironment", "envId": " env-1 "})
        assert isinstance(msg, SelectEnvironmentMessage)
        assert msg.env_id == "env-1"

    def test_select_alias(self):
        assert isinstance(parse_client_message({"type": "select", "envId": "e"}), SelectEnvironmentMessage)

    @pytest.mark.parametrize(
        "msg_type,cls",
        [
            ("cancel", CancelMessage),
            ("switchAccount", SwitchAccountMessage),
            ("refreshList", RefreshListMessage),
            ("refreshEnvList", RefreshListMessage),
            ("retryInit", RetryInitMessage),
        ],
    )
    def test_simple_messages(self, msg_type, cls):
        assert isinstance(parse_client_message({"type": msg_type}), cls)

    def test_type_is_fixed(self):
        assert CancelMessage().type == "cancel"
        assert SelectEnvironmentMessage(env_id="e").type == "selectEnvironment"


class TestProtocolErrors:

    def test_missing_type(self):
        with pytest.raises(ProtocolError, match="Missing message type"):
            parse_client_message({"envId": "env-1"})

    def test_unknown_type(self):
        with pytest.raises(ProtocolError, match="Unknown message type"):
            parse_client_message({"type": "selfDestruct"})

    @pytest.mark.parametrize("data", [{"type": "selectEnvironment"}, {"type": "selectEnvironment", "envId": "  "}])
    def test_select_requires_env_id(self, data):
        with pytest.raises(ProtocolError):
            parse_client_message(data)

    @pytest.mark.parametrize("data", ["cancel", ["cancel"], None, 3])
    def test_non_object(self, data):
        with pytest.raises(ProtocolError):
            parse_client_message(data)

    def test_protocol_error_is_value_error(self):
        assert issubclass(ProtocolError, ValueError)


class TestServerMessages:

    def test_selected(self):
        assert SelectedMessage(env_id="env-1").to_dict() == {"type": "selected", "envId": "env-1"}

    def test_list_refreshed_minimal(self):
        assert ListRefreshedMessage(success=True).to_dict() == {
            "type": "listRefreshed",
            "success": True,
            "envs": [],
        }

    def test_list_refreshed_with_error(self):
        data = ListRefreshedMessage(
            success=False,
            error="down",
            error_context={"initError": None},
        ).to_dict()
        assert data["error"] == "down"
        assert data["errorContext"] == {"initError": None}

    def test_error(self):
        assert ErrorMessage(message="nope").to_dict() == {"type": "error", "message": "nope"}
