"""
Backend platform service check and lazy initialization.
"""

import logging

from envsetup.config import Settings
from envsetup.services.cloud_client import CloudServiceClient, response_body
from envsetup.services.setup.context import SetupContext
from envsetup.services.setup.errors import classify_init_error, error_text
from envsetup.services.telemetry import TelemetryReporter

logger = logging.getLogger(__name__)


async def initialize(
    client: CloudServiceClient,
    context: SetupContext,
    telemetry: TelemetryReporter,
    settings: Settings,
) -> SetupContext:
    """
    Make sure the backend platform service is initialized for this account.

    Returns a new context; never raises. A context that already records the
    service as initialized is returned as is, without any remote call.
    """
    if context.service_initialized:
        logger.debug("Service already initialized, skipping check")
        return context

    try:
        status = response_body(await client.check_service())
    except Exception as e:
        logger.warning(f"Service check failed: {e}")
        telemetry.report_step("check_service", False, context.user_id, error_text(e))
        return context.merge(
            service_checked=True,
            service_initialized=False,
            init_error=classify_init_error(e, settings.help_url),
        )

    if status.get("Initialized"):
        logger.debug("Service is initialized")
        telemetry.report_step("check_service", True, context.user_id)
        return context.merge(service_checked=True, service_initialized=True, init_error=None)

    logger.info("Service not initialized, initializing")
    try:
        await client.init_service(settings.init_source, settings.init_channel)
    except Exception as e:
        logger.warning(f"Service initialization failed: {e}")
        telemetry.report_step("init_service", False, context.user_id, error_text(e))
        return context.merge(
            service_checked=True,
            service_initialized=False,
            init_error=classify_init_error(e, settings.help_url),
        )

    telemetry.report_step("init_service", True, context.user_id)
    return context.merge(service_checked=True, service_initialized=True, init_error=None)
