"""CLI schema command implementation.

This module implements the `tablekit schema` command group: validating a
schema document through the full pipeline and printing its projection for a
presentation context.
"""

import asyncio
import json
import sys

from rich.console import Console
from rich.table import Table
import rich_click as click

from ..config import TablekitConfig
from ..core import SchemaError, SchemaLoader, SchemaService, configure_logging

# Create console for rich formatting
console = Console()


def _build_service(schema_path: str | None) -> SchemaService:
    settings = TablekitConfig()
    configure_logging(
        environment=settings.environment,
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        stream=sys.stderr,
    )
    loader = SchemaLoader(schema_path or settings.schema_path)
    return SchemaService(loader=loader, settings=settings)


@click.group(name="schema")
def schema_command() -> None:
    """📋 **Schema operations** - Validate and inspect schema documents."""
    pass


@schema_command.command(name="validate")
@click.argument("model")
@click.option("--connection", "-c", default=None, help="Connection-specific schema directory")
@click.option(
    "--schema-path",
    type=click.Path(file_okay=False, dir_okay=True),
    default=None,
    help="Directory containing schema documents (defaults to TABLEKIT_SCHEMA_PATH)",
)
def validate_command(model: str, connection: str | None, schema_path: str | None) -> None:
    """✅ **Validate a schema** by loading, validating and normalizing it.

    \b
    Examples:
        tablekit schema validate orders
        tablekit schema validate users --connection analytics
    """
    service = _build_service(schema_path)
    try:
        schema = asyncio.run(service.get_schema(model, connection))
    except SchemaError as e:
        console.print("❌ [bold red]Validation failed[/bold red]")
        console.print(f"[red]{e}[/red]")
        for error in getattr(e, "errors", []):
            console.print(f"  • [dim]{error}[/dim]")
        sys.exit(1)

    console.print("✅ [bold green]Validation successful[/bold green]")
    console.print()

    info_table = Table(show_header=False, box=None, padding=(0, 1))
    info_table.add_row("[bold]Model:[/bold]", f"[cyan]{schema['model']}[/cyan]")
    info_table.add_row("[bold]Table:[/bold]", schema["table"])
    info_table.add_row("[bold]Primary key:[/bold]", str(schema["primary_key"]))
    info_table.add_row("[bold]Fields:[/bold]", str(len(schema["fields"])))
    info_table.add_row(
        "[bold]Relationships:[/bold]", str(len(schema.get("relationships") or []))
    )
    info_table.add_row("[bold]Details:[/bold]", str(len(schema.get("details") or [])))
    info_table.add_row(
        "[bold]Actions:[/bold]",
        ", ".join(action.get("key", "?") for action in schema.get("actions") or []) or "-",
    )
    if schema.get("connection"):
        info_table.add_row("[bold]Connection:[/bold]", str(schema["connection"]))
    console.print(info_table)


@schema_command.command(name="show")
@click.argument("model")
@click.option(
    "--context",
    default=None,
    help="Context projection: list, form, create, edit, detail, meta or comma-separated",
)
@click.option("--connection", "-c", default=None, help="Connection-specific schema directory")
@click.option(
    "--schema-path",
    type=click.Path(file_okay=False, dir_okay=True),
    default=None,
    help="Directory containing schema documents (defaults to TABLEKIT_SCHEMA_PATH)",
)
def show_command(
    model: str, context: str | None, connection: str | None, schema_path: str | None
) -> None:
    """🔎 **Show a schema** projected for a presentation context, as JSON.

    \b
    Examples:
        tablekit schema show orders --context list
        tablekit schema show orders --context list,form
    """
    service = _build_service(schema_path)
    try:
        schema = asyncio.run(service.get_schema(model, connection))
    except SchemaError as e:
        console.print(f"❌ [bold red]Failed to load schema:[/bold red] {e}")
        sys.exit(1)

    filtered = service.filter_schema_for_context(schema, context)
    click.echo(json.dumps(filtered, indent=2, default=str))
