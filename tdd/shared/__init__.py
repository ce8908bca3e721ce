# Cross-cutting test utilities shared across all test types

from .mocks import (
    FakeAuthGateway,
    FakeCloudClient,
    FakeDialogHost,
    MockWebSocket,
    RecordingTelemetry,
    close_channel,
    env_list,
    send,
)

__all__ = [
    "FakeAuthGateway",
    "FakeCloudClient",
    "FakeDialogHost",
    "MockWebSocket",
    "RecordingTelemetry",
    "close_channel",
    "env_list",
    "send",
]
