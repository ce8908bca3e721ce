"""
Setup data model.

SetupContext accumulates what each step learned during one setup attempt.
It is frozen: a step returns a new context built with merge() and never
mutates one it did not produce.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class SetupError:
    """Classified failure of a setup step, rendered inline by the dialog."""
    code: str
    message: str
    help_url: Optional[str] = None
    needs_real_name_auth: bool = False
    needs_platform_auth: bool = False
    request_id: Optional[str] = None
    action_text: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.help_url:
            data["helpUrl"] = self.help_url
        if self.needs_real_name_auth:
            data["needsRealNameAuth"] = True
        if self.needs_platform_auth:
            data["needsPlatformAuth"] = True
        if self.request_id:
            data["requestId"] = self.request_id
        if self.action_text:
            data["actionText"] = self.action_text
        return data


@dataclass(frozen=True)
class SetupContext:
    """Per-attempt state passed between setup steps."""
    user_id: Optional[str] = None
    service_checked: bool = False
    service_initialized: bool = False
    init_error: Optional[SetupError] = None
    promotional_activities: tuple[str, ...] = ()
    create_error: Optional[SetupError] = None

    def merge(self, **changes: Any) -> "SetupContext":
        """Return a copy of this context with the given fields replaced."""
        if "promotional_activities" in changes:
            changes["promotional_activities"] = tuple(changes["promotional_activities"])
        return replace(self, **changes)

    @property
    def has_errors(self) -> bool:
        return self.init_error is not None or self.create_error is not None

    @property
    def help_url(self) -> Optional[str]:
        """Help link of the most recent failure, creation first."""
        if self.create_error and self.create_error.help_url:
            return self.create_error.help_url
        if self.init_error and self.init_error.help_url:
            return self.init_error.help_url
        return None

    def to_dict(self) -> dict:
        """Error context as the dialog consumes it."""
        return {
            "serviceChecked": self.service_checked,
            "serviceInitialized": self.service_initialized,
            "initError": self.init_error.to_dict() if self.init_error else None,
            "createError": self.create_error.to_dict() if self.create_error else None,
            "promotionalActivities": list(self.promotional_activities),
        }


@dataclass(frozen=True)
class EnvironmentRecord:
    """A provisioned environment. Identity is the id; alias is cosmetic."""
    id: str
    alias: Optional[str] = None

    @classmethod
    def from_remote(cls, data: dict) -> Optional["EnvironmentRecord"]:
        """Build a record from a listing entry, or None when it has no id."""
        if not isinstance(data, dict):
            return None
        env_id = data.get("EnvId") or data.get("envId")
        if not isinstance(env_id, str) or not env_id.strip():
            return None
        alias = data.get("Alias") or data.get("alias")
        return cls(id=env_id.strip(), alias=alias or None)

    def to_dict(self) -> dict:
        return {"envId": self.id, "alias": self.alias}


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of an auto-provisioning attempt."""
    success: bool
    context: SetupContext
    env_id: Optional[str] = None


@dataclass(frozen=True)
class SelectionResult:
    """
    Terminal result of one setup invocation.

    Exactly one of these holds: an id was selected, the user cancelled,
    an account switch was requested, or an error is reported with no id.
    Use the classmethod constructors rather than building one by hand.
    """
    selected_env_id: Optional[str] = None
    cancelled: bool = False
    switch_requested: bool = False
    error: Optional[str] = None
    no_envs: bool = False

    @classmethod
    def selected(cls, env_id: str) -> "SelectionResult":
        if not env_id or not env_id.strip():
            raise ValueError("selected environment id must be non-empty")
        return cls(selected_env_id=env_id.strip())

    @classmethod
    def cancel(cls) -> "SelectionResult":
        return cls(cancelled=True)

    @classmethod
    def switch(cls) -> "SelectionResult":
        return cls(switch_requested=True)

    @classmethod
    def failure(cls, error: str, no_envs: bool = False) -> "SelectionResult":
        return cls(error=error, no_envs=no_envs)

    def to_dict(self) -> dict:
        """Caller-facing contract."""
        data: dict[str, Any] = {
            "selectedEnvId": self.selected_env_id,
            "cancelled": self.cancelled,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.no_envs:
            data["noEnvs"] = True
        if self.switch_requested:
            data["switch"] = True
        return data


@dataclass
class AccountInfo:
    """Account identity shown in the dialog header."""
    user_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"uin": self.user_id}
