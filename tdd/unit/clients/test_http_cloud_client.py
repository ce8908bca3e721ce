"""
Tests for HttpCloudServiceClient.

These tests DEFINE the gateway request/response contract:
- Each call posts {"Service", "Action", "Param"} to the gateway URL
- Each request is signed with the secret key over the exact body
- Response.Error payloads and HTTP errors raise CloudApiError
"""

import hashlib
import hmac
import json

import httpx
import pytest

from envsetup.services.auth import LoginState
from envsetup.services.cloud_client import HttpCloudServiceClient, response_body, sign_request
from envsetup.services.setup.errors import CloudApiError


def make_client(handler) -> tuple[HttpCloudServiceClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = HttpCloudServiceClient(
        "https://gateway.test/api/",
        LoginState(secret_id="AKID", secret_key="secret", token="tok"),
        transport=httpx.MockTransport(record),
    )
    return client, requests


class TestRequests:

    @pytest.mark.asyncio
    async def test_init_service_payload(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"Response": {}}))

        await client.init_service("qcloud", "mcp")

        body = json.loads(requests[0].content)
        assert str(requests[0].url) == "https://gateway.test/api"
        assert body == {"Service": "tcb", "Action": "InitTcb", "Param": {"Source": "qcloud", "Channel": "mcp"}}
        assert requests[0].headers["X-Secret-Id"] == "AKID"
        assert requests[0].headers["X-Session-Token"] == "tok"

    @pytest.mark.asyncio
    async def test_create_free_environment_payload(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"EnvId": "env-1"}))

        result = await client.create_free_environment("ai-native", "free", "qcloud")

        body = json.loads(requests[0].content)
        assert body["Action"] == "CreateFreeEnvByActivity"
        assert body["Param"] == {"Alias": "ai-native", "Type": "free", "Source": "qcloud"}
        assert result == {"EnvId": "env-1"}

    @pytest.mark.asyncio
    async def test_describe_account_uses_account_service(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"Uin": "1"}))

        await client.describe_account()

        assert json.loads(requests[0].content)["Service"] == "cam"


class TestSigning:

    @pytest.mark.asyncio
    async def test_request_signed_with_secret_key(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={"Initialized": True}))

        await client.check_service()

        request = requests[0]
        timestamp = request.headers["X-Timestamp"]
        expected = hmac.new(
            b"secret", timestamp.encode() + b"\n" + request.content, hashlib.sha256
        ).hexdigest()
        assert request.headers["X-Signature"] == expected
        assert "secret" not in request.content.decode()

    @pytest.mark.asyncio
    async def test_signature_depends_on_key(self):
        client, requests = make_client(lambda r: httpx.Response(200, json={}))

        await client.list_environments_simple()

        request = requests[0]
        other = sign_request("other-key", request.headers["X-Timestamp"], request.content)
        assert request.headers["X-Signature"] != other

    @pytest.mark.asyncio
    async def test_no_signature_without_secret_key(self):
        requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={})

        client = HttpCloudServiceClient(
            "https://gateway.test/api",
            LoginState(secret_id="AKID", token="tok"),
            transport=httpx.MockTransport(record),
        )

        await client.check_service()

        assert "X-Signature" not in requests[0].headers
        assert requests[0].headers["X-Session-Token"] == "tok"


class TestErrors:

    @pytest.mark.asyncio
    async def test_error_payload(self):
        client, _ = make_client(lambda r: httpx.Response(200, json={
            "Response": {
                "Error": {"Code": "AuthFailure.SignatureFailure", "Message": "bad signature"},
                "RequestId": "req-1",
            }
        }))

        with pytest.raises(CloudApiError) as exc:
            await client.check_service()

        assert exc.value.code == "AuthFailure.SignatureFailure"
        assert exc.value.request_id == "req-1"
        assert str(exc.value) == "[CheckTcbService] bad signature"

    @pytest.mark.asyncio
    async def test_http_error(self):
        client, _ = make_client(lambda r: httpx.Response(502, text="bad gateway"))

        with pytest.raises(CloudApiError) as exc:
            await client.list_environments_simple()

        assert exc.value.code == "HTTP502"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        client, _ = make_client(fail)

        with pytest.raises(CloudApiError) as exc:
            await client.list_environments({})

        assert exc.value.code == "NetworkError"


class TestResponseBody:

    def test_unwraps_response(self):
        assert response_body({"Response": {"EnvId": "e"}}) == {"EnvId": "e"}

    def test_plain(self):
        assert response_body({"EnvId": "e"}) == {"EnvId": "e"}

    def test_non_dict(self):
        assert response_body(None) == {}
