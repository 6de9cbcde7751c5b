"""agentloop CLI entry point."""

import typer
from rich.console import Console
from rich.table import Table

from agentloop.api.cli.commands import run, tools
from agentloop.infrastructure.llm.models import AVAILABLE_MODELS

app = typer.Typer(
    name="agentloop",
    help="agentloop - Tool-calling agent loop for coding tasks",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.command("run", help="Run a prompt through the agent loop")(run.run_prompt)
app.add_typer(tools.app, name="tools", help="Tool management")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """agentloop CLI."""
    ctx.obj = {"verbose": verbose}


@app.command()
def providers():
    """List supported providers and their known models."""
    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Default model", style="green")
    table.add_column("Models", style="white")
    table.add_column("Description", style="dim")

    for name, entry in AVAILABLE_MODELS.items():
        table.add_row(name, entry.default_model, ", ".join(entry.models), entry.description)

    console.print(table)


@app.command()
def version():
    """Show agentloop version."""
    from agentloop import __version__

    console.print(f"[bold blue]agentloop[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
