"""
CloudEnv CLI - Make sure a cloud environment is selected.

Usage:
    cloudenv login              # interactive: opens the selection dialog
    cloudenv login --headless   # no dialog: auto-select or fail
    cloudenv serve              # run the dialog app standalone
"""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from envsetup.config import Settings, get_settings
from envsetup.services.auth import CredentialAuthGateway, LoginState
from envsetup.services.cloud_client import HttpCloudServiceClient
from envsetup.services.environment_cache import EnvironmentCache
from envsetup.services.interactive.host import DialogHost
from envsetup.services.interactive.registry import SessionRegistry
from envsetup.services.setup.context import SelectionResult
from envsetup.services.setup.orchestrator import SelectionOrchestrator
from envsetup.services.telemetry import TelemetryReporter

console = Console()


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


async def prompt_login(from_login_page: bool) -> Optional[LoginState]:
    """Ask for API credentials on the terminal. Nothing is stored."""
    if not from_login_page:
        console.print("No credentials configured. Sign in with an API key pair.")
    secret_id = click.prompt("Secret ID", default="", show_default=False)
    if not secret_id:
        return None
    secret_key = click.prompt("Secret key", hide_input=True)
    return LoginState(secret_id=secret_id, secret_key=secret_key)


def build_orchestrator(settings: Settings) -> tuple[SelectionOrchestrator, TelemetryReporter]:
    registry = SessionRegistry()
    telemetry = TelemetryReporter(settings)
    orchestrator = SelectionOrchestrator(
        client_factory=lambda state: HttpCloudServiceClient(settings.api_url, state),
        auth=CredentialAuthGateway(settings, login_prompt=prompt_login),
        telemetry=telemetry,
        cache=EnvironmentCache(),
        dialog_host=DialogHost(registry, settings),
        registry=registry,
        settings=settings,
    )
    return orchestrator, telemetry


def print_result(result: SelectionResult) -> None:
    if result.selected_env_id:
        console.print(Panel.fit(
            f"Selected environment [green]{result.selected_env_id}[/green]",
            title="CloudEnv",
        ))
    elif result.cancelled:
        console.print("[yellow]Environment selection cancelled[/yellow]")
    elif result.switch_requested:
        console.print("[yellow]Account switch requested[/yellow]")
    else:
        console.print(f"[red]Error:[/red] {result.error}")


@click.group()
@click.version_option(package_name="cloudenv-setup")
def cli():
    """CloudEnv - Sign in and select a cloud environment."""
    pass


@cli.command()
@click.option("--headless", is_flag=True, help="Never open the dialog (CI / remote sessions)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def login(headless: bool, verbose: bool):
    """
    Sign in and make sure an environment is selected.

    Prints the selected environment id, or the reason none could be selected.
    Exits non-zero unless an environment was selected.
    """
    setup_logging(verbose)
    settings = get_settings()
    if headless:
        settings = settings.model_copy(update={"headless": True})

    async def _run() -> SelectionResult:
        orchestrator, telemetry = build_orchestrator(settings)
        try:
            return await orchestrator.run()
        finally:
            await telemetry.flush()

    result = asyncio.run(_run())
    print_result(result)
    if not result.selected_env_id:
        sys.exit(1)


@cli.command()
@click.option("--port", "-p", default=None, type=int, help="Port (default: CLOUDENV_DIALOG_PORT)")
def serve(port: Optional[int]):
    """Run the dialog app standalone (development)."""
    import uvicorn

    from envsetup.main import create_app

    settings = get_settings()
    setup_logging()
    uvicorn.run(create_app(), host=settings.dialog_host, port=port or settings.dialog_port)


if __name__ == "__main__":
    cli()
