"""
Setup error taxonomy.

Remote failures are caught where they happen, classified into a SetupError
and attached to the SetupContext. Only CloudApiError crosses the client
boundary; everything past that is data.
"""

import json
import re
from enum import Enum
from typing import Optional

from envsetup.services.setup.context import SetupError


class SetupErrorKind(str, Enum):
    """Failure classes and how the flow recovers from each."""
    AUTH = "auth"                          # fatal for the call
    SERVICE_INIT = "service_init"          # recoverable via one-shot retry
    ELIGIBILITY = "eligibility"            # auto-provision path only
    CREATION = "creation"                  # sanitized, falls through to dialog
    VERIFICATION_GAP = "verification_gap"  # soft, advise retry
    PROTOCOL = "protocol"                  # logged and ignored
    NETWORK_FALLBACK = "network_fallback"  # retried via simple listing


# Error codes attached to SetupContext.create_error
NO_PROMOTIONAL_ACTIVITY = "NoPromotionalActivity"
PROMOTION_QUERY_FAILED = "PromotionQueryFailed"
MISSING_ENV_ID = "MissingEnvId"
ENV_NOT_YET_AVAILABLE = "EnvNotYetAvailable"
UNKNOWN_ERROR = "UnknownError"

ERROR_KINDS: dict[str, SetupErrorKind] = {
    NO_PROMOTIONAL_ACTIVITY: SetupErrorKind.ELIGIBILITY,
    PROMOTION_QUERY_FAILED: SetupErrorKind.ELIGIBILITY,
    MISSING_ENV_ID: SetupErrorKind.CREATION,
    ENV_NOT_YET_AVAILABLE: SetupErrorKind.VERIFICATION_GAP,
}

NOT_LOGGED_IN = "not logged in"

_REAL_NAME_MARKERS = ("realname", "real-name", "real name", "实名")
_PLATFORM_AUTH_MARKERS = (
    "unauthorizedoperation",
    "authfailure.unauthorized",
    "cam authorization",
    "service role",
    "not authorized",
    "授权",
)
_ACTION_PREFIX = re.compile(r"^\s*\[[A-Za-z0-9_.]+\]\s*")
_RETURN_MESSAGE = re.compile(r'ReturnMessage["\s:]+([^",}]+)')


class CloudApiError(Exception):
    """Raised by a CloudServiceClient when a remote action fails."""

    def __init__(self, message: str, code: str = UNKNOWN_ERROR, request_id: Optional[str] = None):
        self.code = code or UNKNOWN_ERROR
        self.request_id = request_id
        super().__init__(message)


def error_text(err: BaseException) -> str:
    return str(err) or err.__class__.__name__


def error_code(err: BaseException) -> str:
    return getattr(err, "code", None) or UNKNOWN_ERROR


def classify_kind(error: SetupError) -> SetupErrorKind:
    """Map a stored SetupError back to its taxonomy class."""
    return ERROR_KINDS.get(error.code, SetupErrorKind.CREATION)


def classify_init_error(err: BaseException, help_url: str) -> SetupError:
    """Turn an InitService failure into a user-facing SetupError."""
    code = error_code(err)
    raw = error_text(err)
    haystack = f"{code} {raw}".lower()

    needs_real_name = any(marker in haystack for marker in _REAL_NAME_MARKERS)
    needs_platform = not needs_real_name and any(
        marker in haystack for marker in _PLATFORM_AUTH_MARKERS
    )

    if needs_real_name:
        action = "Complete real-name verification for this account, then retry."
    elif needs_platform:
        action = "Authorize the platform service role for this account, then retry."
    else:
        action = "Finish account verification and service authorization to get started."

    return SetupError(
        code=code,
        message="Service setup required",
        help_url=help_url,
        needs_real_name_auth=needs_real_name,
        needs_platform_auth=needs_platform,
        request_id=getattr(err, "request_id", None),
        action_text=action,
    )


def sanitize_error_message(raw: str, internal_name: str, product_name: str) -> str:
    """
    Clean a vendor error string for display.

    Strips a leading "[ActionName]" prefix, unwraps an embedded JSON payload
    to its ReturnMessage/Message, and rebrands the internal service name.
    """
    message = raw.strip()

    if _ACTION_PREFIX.match(message):
        payload = _ACTION_PREFIX.sub("", message, count=1).strip()
        message = payload
        try:
            parsed = json.loads(payload)
        except ValueError:
            found = _RETURN_MESSAGE.search(payload)
            if found:
                message = found.group(1).strip()
        else:
            if isinstance(parsed, dict):
                message = str(parsed.get("ReturnMessage") or parsed.get("Message") or payload)

    if internal_name:
        message = re.sub(re.escape(internal_name), product_name, message, flags=re.IGNORECASE)
    return message.strip()
