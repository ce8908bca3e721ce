"""
Authentication gateway.

Resolves a LoginState for the setup flow. Credentials are held in memory
only; logging out drops the session and nothing is written to disk.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from envsetup.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class LoginState:
    """Credentials and identity for the signed-in account."""
    user_id: Optional[str] = None
    secret_id: Optional[str] = None
    secret_key: Optional[str] = None
    token: Optional[str] = None
    env_id: Optional[str] = None


LoginPrompt = Callable[[bool], Awaitable[Optional[LoginState]]]


class AuthGateway(ABC):

    @abstractmethod
    async def get_login_state(
        self,
        ignore_cached_credentials: bool = False,
        from_login_page: bool = False,
    ) -> Optional[LoginState]:
        """Return the current login state, or None when not logged in."""

    @abstractmethod
    async def logout(self) -> None:
        ...


class CredentialAuthGateway(AuthGateway):
    """
    AuthGateway backed by configured credentials and an interactive prompt.

    Lookup order: configured secret id/key (unless told to ignore them),
    then the in-memory session from a previous prompt, then the prompt
    itself. The prompt receives from_login_page so it can skip a splash
    screen when re-entered after an account switch.
    """

    def __init__(self, settings: Settings, login_prompt: Optional[LoginPrompt] = None):
        self.settings = settings
        self.login_prompt = login_prompt
        self._session: Optional[LoginState] = None

    def _configured_state(self) -> Optional[LoginState]:
        if not (self.settings.secret_id and self.settings.secret_key):
            return None
        return LoginState(
            secret_id=self.settings.secret_id,
            secret_key=self.settings.secret_key,
            token=self.settings.session_token,
        )

    async def get_login_state(
        self,
        ignore_cached_credentials: bool = False,
        from_login_page: bool = False,
    ) -> Optional[LoginState]:
        if not ignore_cached_credentials:
            configured = self._configured_state()
            if configured:
                logger.debug("Using configured credentials")
                return configured
            if self._session:
                return self._session

        if self.login_prompt is None:
            logger.debug("No credentials and no login prompt available")
            return None

        state = await self.login_prompt(from_login_page)
        if state is None:
            logger.info("Login prompt returned no credentials")
            return None

        self._session = state
        return state

    async def logout(self) -> None:
        logger.info("Logging out")
        self._session = None
