from pydantic import BaseModel
from functools import lru_cache
import os


HELP_URL = "https://buy.cloud.tencent.com/lowcode?buyType=tcb&channel=mcp"

# Promotional activities that entitle a user to a free environment
PROMOTION_NAMES = ["NewUser", "ReturningUser", "BaasFree"]

# Filters for the primary environment listing query
ENV_LIST_FILTERS = {
    "EnvTypes": ["weda", "baas"],
    "IsVisible": False,
    "Channels": ["dcloud", "iotenable", "tem", "scene_module"],
}

DEFAULT_DIALOG_PORT = 3721
FALLBACK_DIALOG_PORTS = list(range(3722, 3736))


def _env_flag(*names: str) -> bool:
    return any(os.getenv(name, "").lower() == "true" for name in names)


def _env_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if not value:
        return default
    return float(value)


class Settings(BaseModel):
    app_name: str = "CloudEnv Setup"
    headless: bool = False  # No human present: never open a dialog
    api_url: str = "https://tcb.tencentcloudapi.com"
    secret_id: str | None = None
    secret_key: str | None = None
    session_token: str | None = None

    # Service initialization
    init_source: str = "qcloud"
    init_channel: str = "mcp"

    # Free environment provisioning
    promotion_names: list[str] = PROMOTION_NAMES
    default_activity_type: str = "sv_tcb_personal_qps_free"
    free_env_alias: str = "ai-native"
    create_source: str = "qcloud"
    env_list_filters: dict = ENV_LIST_FILTERS
    verify_poll_interval: float = 2.0
    verify_timeout: float = 30.0  # 0 = single immediate check

    # Error presentation
    help_url: str = HELP_URL
    product_name: str = "CloudBase"
    internal_service_name: str = "TCB"

    # Dialog server
    dialog_host: str = "127.0.0.1"
    dialog_port: int = DEFAULT_DIALOG_PORT
    dialog_fallback_ports: list[int] = FALLBACK_DIALOG_PORTS
    dialog_timeout: float | None = None  # No deadline unless configured

    # Telemetry
    telemetry_disabled: bool = False
    telemetry_url: str = "https://otheve.beacon.qq.com/analytics/v2_upload"
    telemetry_event: str = "env_setup"


@lru_cache
def get_settings() -> Settings:
    return Settings(
        headless=_env_flag("CLOUDENV_HEADLESS", "CLOUDENV_CLOUD_MODE"),
        api_url=os.getenv("CLOUDENV_API_URL", "https://tcb.tencentcloudapi.com"),
        secret_id=os.getenv("CLOUDENV_SECRET_ID"),
        secret_key=os.getenv("CLOUDENV_SECRET_KEY"),
        session_token=os.getenv("CLOUDENV_SESSION_TOKEN"),
        telemetry_disabled=_env_flag("CLOUDENV_TELEMETRY_DISABLED"),
        telemetry_url=os.getenv(
            "CLOUDENV_TELEMETRY_URL", "https://otheve.beacon.qq.com/analytics/v2_upload"
        ),
        dialog_port=int(os.getenv("CLOUDENV_DIALOG_PORT", str(DEFAULT_DIALOG_PORT))),
        dialog_timeout=_env_float("CLOUDENV_DIALOG_TIMEOUT", None),
        verify_timeout=_env_float("CLOUDENV_VERIFY_TIMEOUT", 30.0),
    )
