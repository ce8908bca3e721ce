"""
Cloud service client.

CloudServiceClient is the call surface the setup flow consumes. Every method
returns the raw response payload (a dict) and raises CloudApiError on
failure; interpreting payload shapes is the caller's job.

HttpCloudServiceClient sends each action as JSON to a single gateway
endpoint, which is how the platform's generic action API is exposed.
When the login state carries a secret key, each request is signed with it
(X-Timestamp and X-Signature headers, see sign_request).
"""

import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from envsetup.services.auth import LoginState
from envsetup.services.setup.errors import CloudApiError

logger = logging.getLogger(__name__)


class CloudServiceClient(ABC):
    """Backend actions used during environment setup."""

    @abstractmethod
    async def check_service(self) -> dict:
        """CheckService -> {"Initialized": bool}"""

    @abstractmethod
    async def init_service(self, source: str, channel: str) -> dict:
        """InitService(Source, Channel)"""

    @abstractmethod
    async def list_promotions(self, names: list[str]) -> dict:
        """ListPromotions(Names) -> {"Activities": [{"Type", "Name"}]}"""

    @abstractmethod
    async def create_free_environment(self, alias: str, env_type: str, source: str) -> dict:
        """CreateFreeEnvironment(Alias, Type, Source) -> env id in one of several shapes"""

    @abstractmethod
    async def list_environments(self, filters: dict) -> dict:
        """Filtered listing -> {"EnvList": [...]} or {"Data": {"EnvList": [...]}}"""

    @abstractmethod
    async def list_environments_simple(self) -> dict:
        """Unfiltered fallback listing -> {"EnvList": [...]}"""

    @abstractmethod
    async def describe_account(self) -> dict:
        """Account identity -> {"Uin", "OwnerUin", "AppId"}"""


class HttpCloudServiceClient(CloudServiceClient):
    """CloudServiceClient over the JSON action gateway."""

    SERVICE = "tcb"
    ACCOUNT_SERVICE = "cam"

    def __init__(
        self,
        api_url: str,
        login_state: LoginState,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_url: Gateway URL accepting {"Service", "Action", "Param"}
            login_state: Credentials for the signed-in account
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_url = api_url.rstrip("/")
        self.login_state = login_state
        self.timeout = timeout
        self._transport = transport

    def _headers(self, content: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Secret-Id": self.login_state.secret_id or "",
        }
        if self.login_state.token:
            headers["X-Session-Token"] = self.login_state.token
        if self.login_state.secret_key:
            timestamp = str(int(time.time()))
            headers["X-Timestamp"] = timestamp
            headers["X-Signature"] = sign_request(self.login_state.secret_key, timestamp, content)
        return headers

    async def call(self, action: str, param: Optional[dict] = None, service: str = SERVICE) -> dict:
        """
        Invoke a gateway action.

        Raises:
            CloudApiError: On transport failure, non-2xx status, or an
                error payload in the response
        """
        body = {"Service": service, "Action": action, "Param": param or {}}
        content = json.dumps(body, separators=(",", ":")).encode("utf-8")
        logger.debug(f"Calling {service}.{action}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.api_url, content=content, headers=self._headers(content)
                )
        except httpx.HTTPError as e:
            raise CloudApiError(f"[{action}] {e}", code="NetworkError") from e

        try:
            payload: Any = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400 or not isinstance(payload, dict):
            raise CloudApiError(
                f"[{action}] HTTP {response.status_code}: {response.text[:200]}",
                code=f"HTTP{response.status_code}",
            )

        inner = response_body(payload)
        error = inner.get("Error")
        if isinstance(error, dict):
            raise CloudApiError(
                f"[{action}] {error.get('Message', 'unknown error')}",
                code=error.get("Code", "UnknownError"),
                request_id=inner.get("RequestId"),
            )
        return payload

    async def check_service(self) -> dict:
        return await self.call("CheckTcbService")

    async def init_service(self, source: str, channel: str) -> dict:
        return await self.call("InitTcb", {"Source": source, "Channel": channel})

    async def list_promotions(self, names: list[str]) -> dict:
        return await self.call("DescribeUserPromotionalActivity", {"Names": names})

    async def create_free_environment(self, alias: str, env_type: str, source: str) -> dict:
        return await self.call(
            "CreateFreeEnvByActivity",
            {"Alias": alias, "Type": env_type, "Source": source},
        )

    async def list_environments(self, filters: dict) -> dict:
        return await self.call("DescribeEnvs", filters)

    async def list_environments_simple(self) -> dict:
        return await self.call("DescribeEnvs")

    async def describe_account(self) -> dict:
        return await self.call("GetUserAppId", service=self.ACCOUNT_SERVICE)


def response_body(payload: Any) -> dict:
    """Return the action result, unwrapping a {"Response": {...}} envelope."""
    if not isinstance(payload, dict):
        return {}
    inner = payload.get("Response")
    return inner if isinstance(inner, dict) else payload


def sign_request(secret_key: str, timestamp: str, content: bytes) -> str:
    """HMAC-SHA256 over "{timestamp}\\n" followed by the exact request body, hex encoded."""
    message = timestamp.encode("utf-8") + b"\n" + content
    return hmac.new(secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()
