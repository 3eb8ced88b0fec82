"""
CLI interface for Multi Chat.

This module provides the command-line front end using Typer, with support for:
- Listing the model catalog
- Broadcasting one prompt to several models side by side
- Live rendering of each model's streamed draft with Rich
"""

import asyncio
import functools
import logging
from pathlib import Path

import typer
from rich.columns import Columns
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from multichat.config.model_catalog import UnknownModelError
from multichat.config.settings import config_manager, get_settings
from multichat.core.models import Role, SessionSnapshot, SessionState
from multichat.orchestration import ChatOrchestrator, OrchestrationError
from multichat.utils.client_factory import get_configured_providers

# Initialize CLI components
app = typer.Typer(
    name="multichat",
    help="Chat with several language models side by side",
    no_args_is_help=True,
)
console = Console()

REFRESH_INTERVAL = 0.1


class CLIError(Exception):
    """User-friendly CLI error."""

    def __init__(self, message: str, exit_code: int = 1):
        self.message = message
        self.exit_code = exit_code
        super().__init__(message)


def handle_cli_error(func):
    """Decorator to handle CLI errors gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except (CLIError, OrchestrationError) as e:
            console.print(f"[red]Error:[/red] {e.message}")
            raise typer.Exit(getattr(e, "exit_code", 1)) from None
        except UnknownModelError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(2) from None
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            raise typer.Exit(130) from None
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {str(e)}")
            console.print("[dim]Use --help for usage information[/dim]")
            raise typer.Exit(1) from e

    return wrapper


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.callback()
def main(
    config: Path | None = typer.Option(
        None, "--config", "-c", help="YAML settings file", exists=True, dir_okay=False
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Override the configured logging level"
    ),
):
    """Load configuration and set up logging for every command."""
    overrides = {"LOG_LEVEL": log_level.upper()} if log_level else None
    settings = config_manager.load_configuration(config, override_env=overrides)
    configure_logging(settings.log_level)


def build_orchestrator() -> ChatOrchestrator:
    """Engine used by the commands; tests patch this."""
    return ChatOrchestrator(settings=get_settings())


@app.command("models")
@handle_cli_error
def models_command():
    """List the models sessions can use."""
    orchestrator = build_orchestrator()
    ready = set(get_configured_providers(orchestrator.settings))

    table = Table(title="Available Models", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Provider", style="green")
    table.add_column("Upstream Model", style="dim")
    table.add_column("Description", style="white", ratio=3)
    table.add_column("Ready", justify="center")

    for entry in orchestrator.available_models():
        table.add_row(
            entry.model_id,
            entry.title,
            entry.provider,
            entry.provider_model,
            entry.description,
            "[green]yes[/green]" if entry.provider in ready else "[dim]no[/dim]",
        )

    console.print(table)


@app.command("ask")
@handle_cli_error
def ask_command(
    prompt: str = typer.Argument(..., help="Message to send to every model"),
    model: list[str] = typer.Option(
        ["chatgpt"], "--model", "-m", help="Catalog id of a model (repeatable)"
    ),
):
    """Send one prompt to several models at once and show their replies."""
    if not prompt.strip():
        raise CLIError("Prompt cannot be empty")

    model_ids = list(dict.fromkeys(model))  # Preserves order
    console.print(
        f"[dim]Broadcasting to: {', '.join(model_ids)}[/dim]"
    )

    results = asyncio.run(broadcast_prompt(build_orchestrator(), prompt, model_ids))
    display_results(results)

    if all(result.last_fault for result in results):
        raise typer.Exit(1)


async def broadcast_prompt(
    orchestrator: ChatOrchestrator, prompt: str, model_ids: list[str]
) -> list[SessionSnapshot]:
    """
    Run one synced broadcast and return each session's final snapshot.

    Sessions are created in ``model_ids`` order, all opted into sync, and the
    prompt is dispatched through the shared composer.
    """
    async with orchestrator:
        session_ids = [
            orchestrator.create_session(model_id).session_id for model_id in model_ids
        ]
        for session_id in session_ids:
            orchestrator.set_sync_member(session_id, True)

        orchestrator.set_shared_input(prompt)
        turns = orchestrator.broadcast()

        pending = asyncio.gather(*turns.values())
        with Live(
            render_drafts(orchestrator.list_sessions(), orchestrator),
            console=console,
            transient=True,
        ) as live:
            while not pending.done():
                await asyncio.wait([pending], timeout=REFRESH_INTERVAL)
                live.update(render_drafts(orchestrator.list_sessions(), orchestrator))
        await pending

        return orchestrator.list_sessions()


def render_drafts(snapshots: list[SessionSnapshot], orchestrator: ChatOrchestrator) -> Columns:
    """One panel per session showing its in-progress reply."""
    panels = []
    for snapshot in snapshots:
        title = orchestrator.describe_model(snapshot.model_id).title
        if snapshot.state == SessionState.AWAITING:
            body = Text("waiting for first tokens...", style="dim")
        elif snapshot.draft is not None:
            body = Text(snapshot.draft)
        else:
            body = Text(_last_reply(snapshot) or "", style="white")
        panels.append(
            Panel(body, title=f"{title} ({snapshot.state.value})", border_style="blue")
        )
    return Columns(panels, equal=True, expand=True)


def display_results(results: list[SessionSnapshot]) -> None:
    """Print the final reply or fault for each session."""
    for snapshot in results:
        if snapshot.last_fault:
            console.print(
                Panel(
                    Text(snapshot.last_fault, style="red"),
                    title=f"{snapshot.model_id} (failed)",
                    border_style="red",
                )
            )
        else:
            reply = _last_reply(snapshot)
            console.print(
                Panel(
                    Text(reply) if reply else Text("(empty reply)", style="dim"),
                    title=snapshot.model_id,
                    border_style="green",
                )
            )


def _last_reply(snapshot: SessionSnapshot) -> str | None:
    for message in reversed(snapshot.history):
        if message.role == Role.ASSISTANT:
            return message.content
    return None


# Entry point is handled by pyproject.toml script configuration
