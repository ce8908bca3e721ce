"""
Environment selection state machine.

The setup flow is driven by an explicit (state, event) -> next state table.
The orchestrator decides which event happened; the table decides where that
leads. Anything not in the table is a bug and raises.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SetupState(str, Enum):
    """
    States of one setup invocation.

    State flow:
        INIT -> CHECK_LOGIN -> CHECK_SERVICE -> LIST_ENVIRONMENTS
        LIST_ENVIRONMENTS -> TRY_AUTO_PROVISION | AUTO_SELECT | SHOW_DIALOG | ERROR
        TRY_AUTO_PROVISION -> RETURNED | SHOW_DIALOG | ERROR
        SHOW_DIALOG -> RETURNED | CANCELLED | LOGOUT | ERROR
        LOGOUT -> CHECK_LOGIN (credential cache ignored)
    """
    INIT = "init"
    CHECK_LOGIN = "check_login"
    CHECK_SERVICE = "check_service"
    LIST_ENVIRONMENTS = "list_environments"
    TRY_AUTO_PROVISION = "try_auto_provision"
    AUTO_SELECT = "auto_select"
    SHOW_DIALOG = "show_dialog"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    LOGOUT = "logout"
    ERROR = "error"


class SetupEvent(str, Enum):
    START = "start"
    LOGGED_IN = "logged_in"
    LOGIN_FAILED = "login_failed"
    SERVICE_CHECKED = "service_checked"
    NO_ENVIRONMENTS = "no_environments"          # eligible for auto-provisioning
    CANDIDATE_AVAILABLE = "candidate_available"  # headless, pick the first
    CONFIRMATION_NEEDED = "confirmation_needed"  # a human decides
    NO_RECOVERY = "no_recovery"                  # nothing left to try
    PROVISIONED = "provisioned"
    ENVIRONMENT_SELECTED = "environment_selected"
    DIALOG_CANCELLED = "dialog_cancelled"
    SWITCH_REQUESTED = "switch_requested"
    LOGGED_OUT = "logged_out"


TRANSITIONS: dict[tuple[SetupState, SetupEvent], SetupState] = {
    (SetupState.INIT, SetupEvent.START): SetupState.CHECK_LOGIN,
    (SetupState.CHECK_LOGIN, SetupEvent.LOGGED_IN): SetupState.CHECK_SERVICE,
    (SetupState.CHECK_LOGIN, SetupEvent.LOGIN_FAILED): SetupState.ERROR,
    (SetupState.CHECK_SERVICE, SetupEvent.SERVICE_CHECKED): SetupState.LIST_ENVIRONMENTS,
    (SetupState.LIST_ENVIRONMENTS, SetupEvent.NO_ENVIRONMENTS): SetupState.TRY_AUTO_PROVISION,
    (SetupState.LIST_ENVIRONMENTS, SetupEvent.CANDIDATE_AVAILABLE): SetupState.AUTO_SELECT,
    (SetupState.LIST_ENVIRONMENTS, SetupEvent.CONFIRMATION_NEEDED): SetupState.SHOW_DIALOG,
    (SetupState.LIST_ENVIRONMENTS, SetupEvent.NO_RECOVERY): SetupState.ERROR,
    (SetupState.TRY_AUTO_PROVISION, SetupEvent.PROVISIONED): SetupState.RETURNED,
    (SetupState.TRY_AUTO_PROVISION, SetupEvent.CONFIRMATION_NEEDED): SetupState.SHOW_DIALOG,
    (SetupState.TRY_AUTO_PROVISION, SetupEvent.NO_RECOVERY): SetupState.ERROR,
    (SetupState.AUTO_SELECT, SetupEvent.ENVIRONMENT_SELECTED): SetupState.RETURNED,
    (SetupState.SHOW_DIALOG, SetupEvent.ENVIRONMENT_SELECTED): SetupState.RETURNED,
    (SetupState.SHOW_DIALOG, SetupEvent.DIALOG_CANCELLED): SetupState.CANCELLED,
    (SetupState.SHOW_DIALOG, SetupEvent.SWITCH_REQUESTED): SetupState.LOGOUT,
    (SetupState.SHOW_DIALOG, SetupEvent.NO_RECOVERY): SetupState.ERROR,
    (SetupState.LOGOUT, SetupEvent.LOGGED_OUT): SetupState.CHECK_LOGIN,
}

TERMINAL_STATES = frozenset({SetupState.RETURNED, SetupState.CANCELLED, SetupState.ERROR})


class InvalidSetupTransitionError(Exception):
    """Raised when an event is not valid in the current state."""

    def __init__(self, state: SetupState, event: SetupEvent):
        self.state = state
        self.event = event
        super().__init__(f"Invalid setup transition: {state.value} --{event.value}-->")


@dataclass
class SetupTransition:
    """Record of a state transition."""
    from_state: SetupState
    event: SetupEvent
    to_state: SetupState
    timestamp: datetime
    reason: Optional[str] = None

    def __repr__(self) -> str:
        return f"Transition({self.from_state.value} --{self.event.value}--> {self.to_state.value})"


class SetupStateMachine:
    """
    Tracks one setup invocation.

    Usage:
        machine = SetupStateMachine()
        machine.fire(SetupEvent.START)       # -> CHECK_LOGIN
        machine.fire(SetupEvent.LOGGED_IN)   # -> CHECK_SERVICE
    """

    def __init__(self, initial_state: SetupState = SetupState.INIT):
        self._state = initial_state
        self._history: list[SetupTransition] = []

    @property
    def state(self) -> SetupState:
        return self._state

    @property
    def history(self) -> list[SetupTransition]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_fire(self, event: SetupEvent) -> bool:
        return (self._state, event) in TRANSITIONS

    def fire(self, event: SetupEvent, reason: Optional[str] = None) -> SetupTransition:
        """
        Apply an event to the current state.

        Raises:
            InvalidSetupTransitionError: If the table has no entry for
                (current state, event)
        """
        to_state = TRANSITIONS.get((self._state, event))
        if to_state is None:
            raise InvalidSetupTransitionError(self._state, event)

        transition = SetupTransition(
            from_state=self._state,
            event=event,
            to_state=to_state,
            timestamp=datetime.utcnow(),
            reason=reason,
        )
        self._history.append(transition)
        self._state = to_state
        return transition

    def visited(self, state: SetupState) -> int:
        """Number of times the machine entered the given state."""
        return sum(1 for t in self._history if t.to_state == state)
