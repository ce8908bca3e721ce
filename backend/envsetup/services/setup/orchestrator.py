"""
Environment selection orchestrator.

Drives one setup invocation through the SetupStateMachine: log in, make
sure the backend service is initialized, list environments, then either
auto-provision, auto-select, or ask the user through the dialog. The
result is always a SelectionResult; remote failures never escape.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Optional

from envsetup.config import Settings
from envsetup.services.auth import AuthGateway, LoginState
from envsetup.services.cloud_client import CloudServiceClient, response_body
from envsetup.services.environment_cache import EnvironmentCache
from envsetup.services.interactive.host import DialogHost
from envsetup.services.interactive.protocol import ListRefreshedMessage
from envsetup.services.interactive.registry import SessionRegistry
from envsetup.services.interactive.session import (
    InteractiveSession,
    OutcomeKind,
    SessionView,
)
from envsetup.services.setup.context import (
    AccountInfo,
    EnvironmentRecord,
    SelectionResult,
    SetupContext,
)
from envsetup.services.setup.environments import list_environments
from envsetup.services.setup.errors import NOT_LOGGED_IN, classify_kind, error_text
from envsetup.services.setup.provisioner import try_provision
from envsetup.services.setup.service_initializer import initialize
from envsetup.services.setup.state_machine import (
    InvalidSetupTransitionError,
    SetupEvent,
    SetupState,
    SetupStateMachine,
)
from envsetup.services.telemetry import TelemetryReporter

logger = logging.getLogger(__name__)

ClientFactory = Callable[[LoginState], CloudServiceClient]


@dataclass
class SetupRun:
    """Mutable bookkeeping for one pass from CHECK_LOGIN onwards."""
    ignore_cached_credentials: bool = False
    from_login_page: bool = False
    login_state: Optional[LoginState] = None
    client: Optional[CloudServiceClient] = None
    context: SetupContext = field(default_factory=SetupContext)
    envs: list[EnvironmentRecord] = field(default_factory=list)
    list_error: Optional[str] = None
    selected_env_id: Optional[str] = None
    error: Optional[str] = None
    no_envs: bool = False


class SelectionOrchestrator:
    """
    Usage:
        orchestrator = SelectionOrchestrator(client_factory, auth, telemetry,
                                             cache, dialog_host, registry, settings)
        result = await orchestrator.run()
        result.to_dict()  # {"selectedEnvId": ..., "cancelled": ...}
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        auth: AuthGateway,
        telemetry: TelemetryReporter,
        cache: EnvironmentCache,
        dialog_host: DialogHost,
        registry: SessionRegistry,
        settings: Settings,
    ):
        self.client_factory = client_factory
        self.auth = auth
        self.telemetry = telemetry
        self.cache = cache
        self.dialog_host = dialog_host
        self.registry = registry
        self.settings = settings
        self.machine: Optional[SetupStateMachine] = None
        self._handlers: dict[SetupState, Callable[[SetupRun], Awaitable[SetupEvent]]] = {
            SetupState.CHECK_LOGIN: self._check_login,
            SetupState.CHECK_SERVICE: self._check_service,
            SetupState.LIST_ENVIRONMENTS: self._list_environments,
            SetupState.TRY_AUTO_PROVISION: self._try_auto_provision,
            SetupState.AUTO_SELECT: self._auto_select,
            SetupState.SHOW_DIALOG: self._show_dialog,
        }

    async def select_environment(self, ignore_cached_credentials: bool = False) -> SelectionResult:
        """
        Run a single pass.

        An account switch requested from the dialog logs out and returns
        SelectionResult.switch(); the caller decides whether to go again
        with ignore_cached_credentials=True.
        """
        run = SetupRun(
            ignore_cached_credentials=ignore_cached_credentials,
            from_login_page=ignore_cached_credentials,
        )
        return await self._drive(run, follow_switch=False)

    async def run(self) -> SelectionResult:
        """Run the full flow, re-authenticating after every account switch."""
        return await self._drive(SetupRun(), follow_switch=True)

    async def _drive(self, run: SetupRun, follow_switch: bool) -> SelectionResult:
        machine = SetupStateMachine()
        self.machine = machine
        machine.fire(SetupEvent.START)

        while True:
            state = machine.state

            if state == SetupState.RETURNED:
                result = SelectionResult.selected(run.selected_env_id or "")
                self.cache.set(result.selected_env_id)
                return result
            if state == SetupState.CANCELLED:
                return SelectionResult.cancel()
            if state == SetupState.ERROR:
                return SelectionResult.failure(run.error or "environment setup failed", run.no_envs)
            if state == SetupState.LOGOUT:
                await self._logout()
                if not follow_switch:
                    return SelectionResult.switch()
                machine.fire(SetupEvent.LOGGED_OUT)
                run = SetupRun(ignore_cached_credentials=True, from_login_page=True)
                continue

            try:
                event = await self._handlers[state](run)
            except InvalidSetupTransitionError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected failure in {state.value}")
                run.error = error_text(e)
                return SelectionResult.failure(run.error)

            machine.fire(event)

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _check_login(self, run: SetupRun) -> SetupEvent:
        try:
            login_state = await self.auth.get_login_state(
                ignore_cached_credentials=run.ignore_cached_credentials,
                from_login_page=run.from_login_page,
            )
        except Exception as e:
            logger.error(f"Login failed: {e}")
            login_state = None

        if login_state is None:
            run.error = NOT_LOGGED_IN
            return SetupEvent.LOGIN_FAILED

        run.client = self.client_factory(login_state)
        if not login_state.user_id:
            login_state = replace(login_state, user_id=await self._resolve_user_id(run.client))
        run.login_state = login_state
        run.context = SetupContext(user_id=login_state.user_id)
        return SetupEvent.LOGGED_IN

    async def _check_service(self, run: SetupRun) -> SetupEvent:
        run.context = await self.ensure_service(run.client, run.context)
        return SetupEvent.SERVICE_CHECKED

    async def _list_environments(self, run: SetupRun) -> SetupEvent:
        listing = await list_environments(run.client, self.settings.env_list_filters)
        run.envs = listing.envs
        run.list_error = listing.error
        self.telemetry.report_step(
            "query_env_list",
            listing.success,
            run.context.user_id,
            listing.error,
            envCount=len(listing.envs),
            envIds=",".join(listing.env_ids),
        )

        if run.envs:
            if self.settings.headless:
                return SetupEvent.CANDIDATE_AVAILABLE
            return SetupEvent.CONFIRMATION_NEEDED

        if listing.success and run.context.service_initialized and run.context.init_error is None:
            return SetupEvent.NO_ENVIRONMENTS

        return self._no_environments(run)

    async def _try_auto_provision(self, run: SetupRun) -> SetupEvent:
        result = await try_provision(run.client, run.context, self.telemetry, self.settings)
        run.context = result.context

        if result.success and result.env_id:
            logger.info(f"Provisioned free environment {result.env_id}")
            run.selected_env_id = result.env_id
            return SetupEvent.PROVISIONED

        if run.context.create_error:
            kind = classify_kind(run.context.create_error)
            logger.warning(
                f"Auto-provisioning failed ({kind.value}): {run.context.create_error.message}"
            )
        return self._no_environments(run)

    async def _auto_select(self, run: SetupRun) -> SetupEvent:
        run.selected_env_id = run.envs[0].id
        logger.info(f"Auto-selected environment {run.selected_env_id}")
        return SetupEvent.ENVIRONMENT_SELECTED

    async def _show_dialog(self, run: SetupRun) -> SetupEvent:
        view = SessionView(
            envs=list(run.envs),
            account=await self._account_info(run),
            error_context=self._error_context(run),
        )
        session: Optional[InteractiveSession] = None

        async def refresh() -> ListRefreshedMessage:
            listing = await list_environments(run.client, self.settings.env_list_filters)
            if listing.success:
                run.envs = listing.envs
                session.view.envs = list(listing.envs)
            run.list_error = listing.error
            session.view.error_context = self._error_context(run)
            return session.snapshot(success=listing.success, error=listing.error)

        async def retry() -> ListRefreshedMessage:
            await self.registry.request_retry(session.session_id)
            run.context = await self.ensure_service(run.client, run.context, session.session_id)
            return await refresh()

        session = await self.registry.create(view=view, on_refresh=refresh, on_retry=retry)
        self.telemetry.report_step(
            "display_env_selection", True, run.context.user_id, envCount=len(run.envs)
        )

        try:
            outcome = await self.dialog_host.collect_selection(
                session, timeout=self.settings.dialog_timeout
            )
        except Exception as e:
            logger.error(f"Environment selection dialog failed: {e}")
            run.error = f"Could not show the environment selection dialog: {error_text(e)}"
            return SetupEvent.NO_RECOVERY

        if outcome.kind == OutcomeKind.SELECTED and outcome.env_id:
            run.selected_env_id = outcome.env_id
            return SetupEvent.ENVIRONMENT_SELECTED
        if outcome.kind == OutcomeKind.SWITCH:
            self.telemetry.report_step("switch_account", True, run.context.user_id)
            return SetupEvent.SWITCH_REQUESTED
        return SetupEvent.DIALOG_CANCELLED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def ensure_service(
        self,
        client: CloudServiceClient,
        context: SetupContext,
        session_id: Optional[str] = None,
    ) -> SetupContext:
        """
        Run the ServiceInitializer, honoring a pending retry for the session.

        A retry is consumed here; when taken, the initialized flag and the
        cached init error are cleared first. Without a retry a cached init
        error is kept as is.
        """
        if await self.registry.take_retry(session_id):
            logger.info("Retrying service initialization")
            context = context.merge(service_initialized=False, init_error=None)
        elif context.init_error is not None:
            return context
        return await initialize(client, context, self.telemetry, self.settings)

    def _no_environments(self, run: SetupRun) -> SetupEvent:
        self.telemetry.report_step(
            "no_envs",
            False,
            run.context.user_id,
            run.context.create_error.message if run.context.create_error else run.list_error,
        )
        if not self.settings.headless:
            return SetupEvent.CONFIRMATION_NEEDED
        run.error = self._headless_error(run)
        run.no_envs = True
        return SetupEvent.NO_RECOVERY

    def _headless_error(self, run: SetupRun) -> str:
        lines = ["No environment is available for this account."]
        context = run.context
        if context.init_error:
            lines.append(f"Service initialization failed: {context.init_error.message}")
            if context.init_error.action_text:
                lines.append(context.init_error.action_text)
        if context.create_error:
            lines.append(f"Environment creation failed: {context.create_error.message}")
        if run.list_error:
            lines.append(f"Environment listing failed: {run.list_error}")
        help_url = context.help_url or self.settings.help_url
        lines.append(f"Please visit {help_url} to create an environment, then try again.")
        return "\n".join(lines)

    def _error_context(self, run: SetupRun) -> Optional[dict]:
        if not run.context.has_errors and not run.list_error:
            return None
        data = run.context.to_dict()
        if run.list_error:
            data["listError"] = run.list_error
        return data

    async def _resolve_user_id(self, client: CloudServiceClient) -> Optional[str]:
        try:
            body = response_body(await client.describe_account())
        except Exception as e:
            logger.debug(f"Could not resolve account id: {e}")
            return None
        user_id = body.get("OwnerUin") or body.get("Uin")
        return str(user_id) if user_id else None

    async def _account_info(self, run: SetupRun) -> AccountInfo:
        user_id = await self._resolve_user_id(run.client)
        if not user_id and run.login_state:
            user_id = run.login_state.user_id
        return AccountInfo(user_id=user_id)

    async def _logout(self) -> None:
        try:
            await self.auth.logout()
        except Exception as e:
            logger.warning(f"Logout failed: {e}")
        self.cache.reset()
