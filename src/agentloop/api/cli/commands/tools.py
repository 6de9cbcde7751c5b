"""Tools command - List and inspect the built-in workspace tools."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from agentloop.application.factory import AgentFactory
from agentloop.config.settings import AgentSettings
from agentloop.infrastructure.tools.registry import ToolRegistry

app = typer.Typer(help="Inspect the workspace tools offered to the model")
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="YAML configuration file")


def _registry(config: Optional[Path]) -> ToolRegistry:
    settings = AgentSettings.load_from_file(config) if config else AgentSettings()
    return AgentFactory(settings).create_registry()


@app.command("list")
def list_tools(config: Optional[Path] = ConfigOption):
    """List the tools registered for the configured subset."""
    registry = _registry(config)

    table = Table(title=f"Workspace tools ({len(registry)})")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Required parameters", style="green")
    table.add_column("Description", style="white")

    for tool in registry.list():
        required = tool.parameters_schema.get("required", [])
        table.add_row(tool.name, ", ".join(required) or "-", tool.description)

    console.print(table)


@app.command("inspect")
def inspect_tool(
    tool_name: str = typer.Argument(..., help="Name of the tool, e.g. read or grep"),
    config: Optional[Path] = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Print the full JSON schema"),
):
    """Show a tool's description and parameter schema."""
    tool = _registry(config).get(tool_name)
    if tool is None:
        console.print(f"[red]Tool '{tool_name}' not found[/red]")
        raise typer.Exit(1)

    schema = tool.parameters_schema
    required = set(schema.get("required", []))

    console.print(f"[bold cyan]{tool.name}[/bold cyan]: {tool.description}", highlight=False)

    params = Table(show_header=True, header_style="bold")
    params.add_column("Parameter", style="cyan", no_wrap=True)
    params.add_column("Type")
    params.add_column("Required")
    params.add_column("Description", style="dim")
    for name, prop in schema.get("properties", {}).items():
        params.add_row(name, prop.get("type", ""), "yes" if name in required else "", prop.get("description", ""))
    console.print(params)

    if as_json:
        console.print_json(data=schema)
