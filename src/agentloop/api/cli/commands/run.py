"""Run command - Execute one prompt through the agent loop."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from agentloop.application.factory import AgentFactory
from agentloop.config.settings import AgentSettings
from agentloop.core.domain.errors import AgentLoopError
from agentloop.core.domain.messages import (
    CancelledMessage,
    CanonicalMessage,
    ErrorMessage,
    TextMessage,
    ToolCallMessage,
    ToolResultMessage,
)
from agentloop.logging_config import configure_logging

console = Console()

ARGUMENT_PREVIEW_CHARS = 120


def _preview(value: object, limit: int = ARGUMENT_PREVIEW_CHARS) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return text if len(text) <= limit else text[: limit - 3] + "..."


class MessagePrinter:
    """Renders canonical messages to the console as they arrive."""

    def __init__(self, console: Console, debug: bool = False):
        self.console = console
        self.debug = debug
        self._in_text = False

    def __call__(self, message: CanonicalMessage) -> None:
        if isinstance(message, TextMessage):
            self.console.print(message.text, end="", markup=False, highlight=False)
            self._in_text = True
            return

        self.finish()
        if isinstance(message, ToolCallMessage):
            if message.is_complete:
                self.console.print(
                    f"[cyan]> {message.tool_name}[/cyan] [dim]{escape(_preview(message.arguments))}[/dim]",
                    highlight=False,
                )
        elif isinstance(message, ToolResultMessage):
            if message.is_error:
                error = message.payload.get("error", "failed")
                self.console.print(f"[red]  x {message.tool_name}: {escape(_preview(error))}[/red]", highlight=False)
            else:
                self.console.print(f"[green]  ok {message.tool_name}[/green]")
                if self.debug:
                    self.console.print(f"[dim]{escape(_preview(message.payload, 500))}[/dim]", highlight=False)
        elif isinstance(message, ErrorMessage):
            self.console.print(f"[bold red]Error:[/bold red] {escape(message.message)}", highlight=False)
        elif isinstance(message, CancelledMessage):
            self.console.print(f"[yellow]Cancelled: {escape(message.reason)}[/yellow]")

    def finish(self) -> None:
        """Terminate a streamed text block with a newline."""
        if self._in_text:
            self.console.print()
            self._in_text = False


def load_settings(config: Optional[Path], **overrides) -> AgentSettings:
    values = {k: v for k, v in overrides.items() if v is not None}
    if config:
        return AgentSettings.load_from_file(config, **values)
    return AgentSettings(**values)


def run_prompt(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Prompt for the agent"),
    workdir: Path = typer.Option(Path("."), "--workdir", "-w", help="Workspace root the tools are confined to"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Provider name (openai, anthropic, google, openrouter)"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id"),
    max_rounds: Optional[int] = typer.Option(None, "--max-rounds", "-r", min=1, max=10, help="Maximum tool-calling rounds"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Run a prompt and stream the agent's messages.

    Examples:
        # Ask about the current directory
        agentloop run "List the Python files and summarize them"

        # Use another provider and workspace
        agentloop run "Fix the failing test" --provider anthropic --workdir ./project
    """
    global_opts = ctx.obj or {}

    try:
        settings = load_settings(config, provider=provider, model=model, max_rounds=max_rounds)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(2)

    if debug:
        level = "DEBUG"
    elif global_opts.get("verbose"):
        level = "INFO"
    else:
        level = settings.log_level
    configure_logging(level, settings.log_json)

    if not workdir.is_dir():
        console.print(f"[red]Working directory does not exist: {workdir}[/red]")
        raise typer.Exit(2)

    executor = AgentFactory(settings).create_executor()
    printer = MessagePrinter(console, debug=debug)

    console.print(
        f"[dim]{settings.provider}/{settings.resolved_model()} in {workdir.resolve()}[/dim]",
        highlight=False,
    )

    try:
        result = asyncio.run(
            executor.execute(
                prompt,
                working_directory=workdir,
                on_message=printer,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(130)
    except AgentLoopError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}", highlight=False)
        raise typer.Exit(1)

    printer.finish()

    summary = (
        f"{result.duration_ms / 1000:.1f}s, {result.usage.total_tokens} tokens, "
        f"${result.total_cost_usd:.4f}, tools: {len(result.tools_used)}"
    )
    if result.success:
        console.print(f"[green]Done[/green] [dim]({summary})[/dim]")
        return

    status = "Cancelled" if result.cancelled else f"Failed: {escape(str(result.error))}"
    console.print(f"[red]{status}[/red] [dim]({summary})[/dim]", highlight=False)
    raise typer.Exit(1)
