"""
Tests for the FreeEnvironmentProvisioner.

These tests DEFINE the auto-provisioning contract:
- No promotional activity -> NoPromotionalActivity, no creation attempted
- The first activity's type is used for creation
- The created id is decoded from four response shapes in a fixed order
- A created id missing from the listing -> EnvNotYetAvailable (never raises)
- A failing verification query accepts the created id optimistically
- Creation errors are sanitized before being stored
"""

import pytest

from envsetup.services.setup.context import SetupContext
from envsetup.services.setup.errors import CloudApiError
from envsetup.services.setup.provisioner import (
    EnvIdSource,
    extract_env_id,
    try_provision,
)
from shared.mocks import FakeCloudClient, env_list

ONE_ACTIVITY = {"Activities": [{"Type": "sv_tcb_personal_free", "Name": "NewUser"}]}


class TestExtractEnvId:

    @pytest.mark.parametrize(
        "payload,source",
        [
            ({"EnvId": "  env-abc  "}, EnvIdSource.TOP_LEVEL),
            ({"Response": {"EnvId": "env-abc"}}, EnvIdSource.RESPONSE),
            ({"Data": {"EnvId": "env-abc "}}, EnvIdSource.DATA),
            ({"envId": "env-abc"}, EnvIdSource.LOWER_CASE),
        ],
    )
    def test_accepted_shapes(self, payload, source):
        extracted = extract_env_id(payload)
        assert extracted.env_id == "env-abc"
        assert extracted.source == source

    def test_priority_order(self):
        payload = {
            "envId": "lower",
            "Data": {"EnvId": "data"},
            "Response": {"EnvId": "response"},
        }
        assert extract_env_id(payload).env_id == "response"

    def test_blank_values_are_skipped(self):
        payload = {"EnvId": "   ", "Data": {"EnvId": "env-data"}}
        assert extract_env_id(payload).env_id == "env-data"

    @pytest.mark.parametrize("payload", [{}, {"EnvId": ""}, {"EnvId": 42}, {"Response": "x"}, None])
    def test_no_id(self, payload):
        assert extract_env_id(payload) is None


class TestEligibility:

    @pytest.mark.asyncio
    async def test_no_promotional_activity(self, telemetry, settings):
        client = FakeCloudClient(promotions={"Activities": []})

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is False
        assert result.env_id is None
        assert result.context.create_error.code == "NoPromotionalActivity"
        assert client.count("create_free_environment") == 0

    @pytest.mark.asyncio
    async def test_queries_configured_promotion_names(self, telemetry, settings):
        client = FakeCloudClient(promotions={"Activities": []})

        await try_provision(client, SetupContext(), telemetry, settings)

        assert ("list_promotions", ("NewUser", "ReturningUser", "BaasFree")) in client.calls

    @pytest.mark.asyncio
    async def test_promotion_query_failure(self, telemetry, settings):
        client = FakeCloudClient(promotions=CloudApiError("[DescribeUserPromotionalActivity] timeout"))

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is False
        assert result.context.create_error.code == "PromotionQueryFailed"
        assert result.context.create_error.message == "timeout"


class TestCreation:

    @pytest.mark.asyncio
    async def test_uses_first_activity_type(self, telemetry, settings):
        client = FakeCloudClient(
            promotions={"Activities": [{"Type": "first"}, {"Type": "second"}]},
            create={"EnvId": "env-new"},
            listings=[env_list("env-new")],
        )

        await try_provision(client, SetupContext(), telemetry, settings)

        assert ("create_free_environment", "ai-native", "first", "qcloud") in client.calls

    @pytest.mark.asyncio
    async def test_activity_type_fallbacks(self, telemetry, settings):
        client = FakeCloudClient(
            promotions={"Activities": [{"Name": "BaasFree"}]},
            create={"EnvId": "env-new"},
            listings=[env_list("env-new")],
        )

        await try_provision(client, SetupContext(), telemetry, settings)

        assert (
            "create_free_environment", "ai-native", settings.default_activity_type, "qcloud"
        ) in client.calls

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "created",
        [
            {"EnvId": "env-xyz"},
            {"Response": {"EnvId": " env-xyz"}},
            {"Data": {"EnvId": "env-xyz"}},
            {"envId": "env-xyz\n"},
        ],
    )
    async def test_every_shape_yields_same_id(self, created, telemetry, settings):
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create=created,
            listings=[env_list("env-xyz")],
        )

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is True
        assert result.env_id == "env-xyz"

    @pytest.mark.asyncio
    async def test_missing_env_id(self, telemetry, settings):
        client = FakeCloudClient(promotions=ONE_ACTIVITY, create={"EnvId": "  "})

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is False
        assert result.env_id is None
        assert result.context.create_error.code == "MissingEnvId"

    @pytest.mark.asyncio
    async def test_creation_error_is_sanitized(self, telemetry, settings):
        raw = '[CreateFreeEnvByActivity] {"ReturnCode": 1, "ReturnMessage": "TCB quota exceeded"}'
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create=CloudApiError(raw, code="LimitExceeded"),
        )

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is False
        assert result.context.create_error.code == "LimitExceeded"
        assert result.context.create_error.message == "CloudBase quota exceeded"
        assert result.context.promotional_activities == ("NewUser",)


class TestVerification:

    @pytest.mark.asyncio
    async def test_not_visible_is_env_not_yet_available(self, telemetry, settings):
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create={"EnvId": "env-new"},
            listings=[env_list("env-other")],
        )

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is False
        assert result.env_id is None
        assert result.context.create_error.code == "EnvNotYetAvailable"
        assert "retry shortly" in result.context.create_error.message

    @pytest.mark.asyncio
    async def test_polls_until_visible(self, telemetry, settings):
        settings = settings.model_copy(update={"verify_timeout": 5.0})
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create={"EnvId": "env-new"},
            listings=[env_list(), env_list(), env_list("env-new")],
        )

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is True
        assert result.env_id == "env-new"
        assert client.count("list_environments") == 3

    @pytest.mark.asyncio
    async def test_zero_timeout_checks_once(self, telemetry, settings):
        settings = settings.model_copy(update={"verify_timeout": 0})
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create={"EnvId": "env-new"},
            listings=[env_list(), env_list("env-new")],
        )

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.context.create_error.code == "EnvNotYetAvailable"
        assert client.count("list_environments") == 1

    @pytest.mark.asyncio
    async def test_failing_verification_accepts_optimistically(self, telemetry, settings):
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create={"EnvId": "env-new"},
            listings=[CloudApiError("network down")],
            simple_listings=[CloudApiError("network down")],
        )

        result = await try_provision(client, SetupContext(), telemetry, settings)

        assert result.success is True
        assert result.env_id == "env-new"
        assert result.context.create_error is None

    @pytest.mark.asyncio
    async def test_telemetry_steps(self, telemetry, settings):
        client = FakeCloudClient(
            promotions=ONE_ACTIVITY,
            create={"EnvId": "env-new"},
            listings=[env_list("env-new")],
        )

        await try_provision(client, SetupContext(user_id="7"), telemetry, settings)

        assert telemetry.steps() == ["check_promotional_activity", "create_free_env", "verify_env"]
        assert all(event.user_id == "7" for event in telemetry.events)
