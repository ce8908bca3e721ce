"""
Environment listing with a fallback query.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from envsetup.services.cloud_client import CloudServiceClient, response_body
from envsetup.services.setup.context import EnvironmentRecord
from envsetup.services.setup.errors import error_text

logger = logging.getLogger(__name__)


@dataclass
class EnvListResult:
    envs: list[EnvironmentRecord] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    used_fallback: bool = False

    @property
    def env_ids(self) -> list[str]:
        return [env.id for env in self.envs]


def extract_env_list(payload: Any) -> Optional[list[EnvironmentRecord]]:
    """
    Read the environment list out of a listing response.

    Accepts {"EnvList": [...]} and {"Data": {"EnvList": [...]}}, either one
    optionally wrapped in "Response". Returns None for any other shape.
    """
    body = response_body(payload)
    raw = body.get("EnvList")
    if raw is None and isinstance(body.get("Data"), dict):
        raw = body["Data"].get("EnvList")
    if not isinstance(raw, list):
        return None
    records = (EnvironmentRecord.from_remote(item) for item in raw)
    return [record for record in records if record is not None]


async def list_environments(client: CloudServiceClient, filters: dict) -> EnvListResult:
    """
    List environments with the filtered query, falling back to the simple one.

    Never raises: when both queries fail the result is unsuccessful, has no
    environments, and carries the fallback's error text.
    """
    try:
        envs = extract_env_list(await client.list_environments(filters))
        if envs is not None:
            return EnvListResult(envs=envs)
        logger.warning("Unexpected environment list shape, using simple listing")
    except Exception as e:
        logger.warning(f"Filtered environment listing failed, using simple listing: {e}")

    try:
        envs = extract_env_list(await client.list_environments_simple())
    except Exception as e:
        logger.error(f"Simple environment listing failed: {e}")
        return EnvListResult(success=False, error=error_text(e), used_fallback=True)

    if envs is None:
        logger.error("Simple environment listing returned an unexpected shape")
        return EnvListResult(
            success=False,
            error="unexpected environment list response",
            used_fallback=True,
        )
    return EnvListResult(envs=envs, used_fallback=True)
