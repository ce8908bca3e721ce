"""
Free environment provisioning.

A user who holds a promotional activity can get a free environment created
automatically. Creation is followed by a bounded verification poll because
a freshly created environment is not immediately visible to the listing
query.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from envsetup.config import Settings
from envsetup.services.cloud_client import CloudServiceClient, response_body
from envsetup.services.setup.context import ProvisionResult, SetupContext, SetupError
from envsetup.services.setup.environments import list_environments
from envsetup.services.setup.errors import (
    ENV_NOT_YET_AVAILABLE,
    MISSING_ENV_ID,
    NO_PROMOTIONAL_ACTIVITY,
    PROMOTION_QUERY_FAILED,
    CloudApiError,
    error_code,
    error_text,
    sanitize_error_message,
)
from envsetup.services.setup.polling import poll_until
from envsetup.services.telemetry import TelemetryReporter

logger = logging.getLogger(__name__)


class EnvIdSource(str, Enum):
    """Where in a creation response the environment id was found."""
    TOP_LEVEL = "EnvId"
    RESPONSE = "Response.EnvId"
    DATA = "Data.EnvId"
    LOWER_CASE = "envId"


# Checked in order; the first non-empty string wins
ENV_ID_PATHS: list[tuple[EnvIdSource, tuple[str, ...]]] = [
    (EnvIdSource.TOP_LEVEL, ("EnvId",)),
    (EnvIdSource.RESPONSE, ("Response", "EnvId")),
    (EnvIdSource.DATA, ("Data", "EnvId")),
    (EnvIdSource.LOWER_CASE, ("envId",)),
]


@dataclass(frozen=True)
class ExtractedEnvId:
    source: EnvIdSource
    env_id: str


def _lookup(payload: Any, path: tuple[str, ...]) -> Any:
    value = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_env_id(payload: Any) -> Optional[ExtractedEnvId]:
    """Decode the created environment id from a creation response."""
    for source, path in ENV_ID_PATHS:
        value = _lookup(payload, path)
        if isinstance(value, str) and value.strip():
            return ExtractedEnvId(source=source, env_id=value.strip())
    return None


def activity_type(activity: dict, default: str) -> str:
    return activity.get("Type") or activity.get("ActivityType") or default


def _activities(payload: Any) -> list[dict]:
    body = response_body(payload)
    raw = body.get("Activities")
    if raw is None and isinstance(body.get("Data"), dict):
        raw = body["Data"].get("Activities")
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


async def try_provision(
    client: CloudServiceClient,
    context: SetupContext,
    telemetry: TelemetryReporter,
    settings: Settings,
) -> ProvisionResult:
    """
    Create a free environment if the user is eligible.

    Never raises. On failure the returned context carries create_error.
    """
    user_id = context.user_id

    try:
        activities = _activities(await client.list_promotions(settings.promotion_names))
    except Exception as e:
        logger.warning(f"Promotional activity query failed: {e}")
        telemetry.report_step("check_promotional_activity", False, user_id, error_text(e))
        return ProvisionResult(
            success=False,
            context=context.merge(
                create_error=SetupError(
                    code=PROMOTION_QUERY_FAILED,
                    message=sanitize_error_message(
                        error_text(e), settings.internal_service_name, settings.product_name
                    ),
                    help_url=settings.help_url,
                )
            ),
        )

    names = [str(item.get("Name") or activity_type(item, "")) for item in activities]
    context = context.merge(promotional_activities=names)
    telemetry.report_step(
        "check_promotional_activity",
        bool(activities),
        user_id,
        activities=",".join(names),
    )

    if not activities:
        logger.info("No promotional activity, cannot create a free environment")
        return ProvisionResult(
            success=False,
            context=context.merge(
                create_error=SetupError(
                    code=NO_PROMOTIONAL_ACTIVITY,
                    message="This account has no free environment offer",
                    help_url=settings.help_url,
                )
            ),
        )

    env_type = activity_type(activities[0], settings.default_activity_type)
    logger.info(f"Creating free environment (type={env_type})")

    try:
        created = await client.create_free_environment(
            settings.free_env_alias, env_type, settings.create_source
        )
    except Exception as e:
        message = sanitize_error_message(
            error_text(e), settings.internal_service_name, settings.product_name
        )
        logger.warning(f"Free environment creation failed: {message}")
        telemetry.report_step(
            "create_free_env", False, user_id, message, alias=settings.free_env_alias
        )
        return ProvisionResult(
            success=False,
            context=context.merge(
                create_error=SetupError(
                    code=error_code(e),
                    message=message,
                    help_url=settings.help_url,
                    request_id=getattr(e, "request_id", None),
                )
            ),
        )

    extracted = extract_env_id(created)
    if extracted is None:
        logger.error(f"Creation response has no environment id: {created!r}")
        telemetry.report_step(
            "create_free_env", False, user_id, "missing env id", alias=settings.free_env_alias
        )
        return ProvisionResult(
            success=False,
            context=context.merge(
                create_error=SetupError(
                    code=MISSING_ENV_ID,
                    message="Environment was created but no id was returned",
                    help_url=settings.help_url,
                )
            ),
        )

    env_id = extracted.env_id
    logger.debug(f"Created environment {env_id} (from {extracted.source.value})")
    telemetry.report_step(
        "create_free_env", True, user_id, envId=env_id, alias=settings.free_env_alias
    )

    async def visible() -> bool:
        listing = await list_environments(client, settings.env_list_filters)
        if not listing.success:
            raise CloudApiError(listing.error or "environment listing failed")
        return env_id in listing.env_ids

    try:
        found = await poll_until(visible, settings.verify_poll_interval, settings.verify_timeout)
    except Exception as e:
        logger.warning(f"Could not verify environment {env_id}, accepting it: {e}")
        telemetry.report_step("verify_env", True, user_id, error_text(e), envId=env_id)
        return ProvisionResult(success=True, context=context, env_id=env_id)

    if not found:
        logger.warning(f"Environment {env_id} not visible after {settings.verify_timeout}s")
        telemetry.report_step("verify_env", False, user_id, "not yet available", envId=env_id)
        return ProvisionResult(
            success=False,
            context=context.merge(
                create_error=SetupError(
                    code=ENV_NOT_YET_AVAILABLE,
                    message=(
                        f"Environment {env_id} was created but is not available yet, "
                        "please retry shortly"
                    ),
                    help_url=settings.help_url,
                )
            ),
        )

    telemetry.report_step("verify_env", True, user_id, envId=env_id)
    return ProvisionResult(success=True, context=context, env_id=env_id)
