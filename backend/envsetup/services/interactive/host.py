"""
Dialog host.

Runs the dialog web app on a local port while a selection is pending.
The default port is tried first, then the fallback range. A server that is
already running is reused; it is stopped once the dialog resolves.
"""

import asyncio
import logging
import socket
from typing import Callable, Optional

import click
import uvicorn

from envsetup.config import Settings
from envsetup.services.interactive.registry import SessionRegistry
from envsetup.services.interactive.session import DialogOutcome, InteractiveSession

logger = logging.getLogger(__name__)

LinkOpener = Callable[[str], object]


class DialogUnavailableError(Exception):
    """Raised when no dialog port can be bound."""


def bind_first_free(host: str, ports: list[int]) -> socket.socket:
    """Bind a listening socket on the first free port of the list."""
    for port in ports:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            logger.debug(f"Port {port} is in use")
            continue
        sock.listen(128)
        return sock
    raise DialogUnavailableError(f"No free port among {ports[0]}-{ports[-1]}")


class DialogHost:

    def __init__(
        self,
        registry: SessionRegistry,
        settings: Settings,
        link_opener: LinkOpener = click.launch,
    ):
        self.registry = registry
        self.settings = settings
        self.link_opener = link_opener
        self.port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ports(self) -> list[int]:
        return [self.settings.dialog_port] + [
            p for p in self.settings.dialog_fallback_ports if p != self.settings.dialog_port
        ]

    def dialog_url(self, session_id: str) -> str:
        return f"http://{self.settings.dialog_host}:{self.port}/env-setup/{session_id}"

    async def start(self) -> int:
        """
        Start the dialog server, or reuse the running one.

        Returns:
            The bound port

        Raises:
            DialogUnavailableError: If no port is free or the server fails
                to start
        """
        if self.running and self.port is not None:
            return self.port

        from envsetup.main import create_app

        sock = bind_first_free(self.settings.dialog_host, self.ports)
        port = sock.getsockname()[1]
        app = create_app(registry=self.registry, link_opener=self.link_opener)
        config = uvicorn.Config(app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._task.done():
                sock.close()
                raise DialogUnavailableError(f"Dialog server failed to start on port {port}")
            await asyncio.sleep(0.05)

        self.port = port
        logger.info(f"Dialog server listening on {self.settings.dialog_host}:{port}")
        return port

    async def stop(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        try:
            await self._task
        except Exception as e:
            logger.debug(f"Dialog server stopped with error: {e}")
        self._server = None
        self._task = None
        self.port = None

    def open_dialog(self, session_id: str) -> str:
        url = self.dialog_url(session_id)
        try:
            self.link_opener(url)
        except Exception as e:
            logger.warning(f"Could not open a browser ({e}); open this URL manually: {url}")
        else:
            logger.info(f"Opened environment selection dialog: {url}")
        return url

    async def collect_selection(
        self,
        session: InteractiveSession,
        timeout: Optional[float] = None,
    ) -> DialogOutcome:
        """
        Show the dialog for a session and wait for its outcome.

        The session is removed from the registry and the server is stopped
        whatever the outcome.
        """
        try:
            await self.start()
            self.open_dialog(session.session_id)
            return await session.wait(timeout)
        finally:
            await self.registry.remove(session.session_id)
            await self.stop()
