"""
Command-line interface for knowflow.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import get_engine_config
from .engine import WorkflowEngine
from .errors import GraphValidationError
from .executors import create_default_registry
from .logging_config import setup_logging
from .models import NodeStatus, Workflow, WorkflowExecution
from .templates import get_workflow_template, get_workflow_templates, instantiate_template

app = typer.Typer(help="knowflow - DAG workflow runner for LLM and retrieval pipelines")
console = Console()

STATUS_STYLES = {
    NodeStatus.COMPLETED: "green",
    NodeStatus.FAILED: "red",
    NodeStatus.SKIPPED: "yellow",
}


def _load_workflow(path: Path) -> Workflow:
    if not path.exists():
        console.print(f"[red]Workflow file does not exist: {path}[/red]")
        raise typer.Exit(code=1)
    try:
        return Workflow.from_json(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Invalid workflow file {path}: {e}[/red]")
        raise typer.Exit(code=1)


def _print_validation_errors(error: GraphValidationError):
    console.print(f"[bold red]Validation failed with {len(error.errors)} error(s):[/bold red]")
    for issue in error.errors:
        console.print(f"  • {escape(f'[{type(issue).__name__}] {issue}')}")


def _print_execution(execution: WorkflowExecution):
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Type", style="blue")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Detail", style="white")

    for node_exec in execution.nodeExecutions.values():
        style = STATUS_STYLES.get(node_exec.status, "white")
        duration = f"{node_exec.duration}ms" if node_exec.duration is not None else "-"
        table.add_row(
            node_exec.nodeId,
            node_exec.nodeType,
            f"[{style}]{node_exec.status.value}[/{style}]",
            duration,
            escape(node_exec.error or node_exec.skipReason or ""),
        )

    console.print(table)

    for warning in execution.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")


@app.command()
def run(
    workflow_file: Path = typer.Argument(..., help="Workflow JSON file"),
    input: Optional[str] = typer.Option(None, "--input", "-i", help="Run input as a JSON document"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Run timeout in seconds"),
    strict: bool = typer.Option(False, "--strict", help="Fail on unresolved template references"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Execute a workflow and print its output."""
    config = get_engine_config()
    setup_logging("DEBUG" if verbose else config.log_level)

    workflow = _load_workflow(workflow_file)
    try:
        payload = json.loads(input) if input else None
    except json.JSONDecodeError as e:
        console.print(f"[red]--input is not valid JSON: {e}[/red]")
        raise typer.Exit(code=1)

    engine = WorkflowEngine(create_default_registry(config=config), config)

    try:
        with console.status(f"[bold green]Running {workflow.name}..."):
            execution = asyncio.run(
                engine.execute_workflow(workflow, payload, timeout=timeout, strict_templates=strict or None)
            )
    except GraphValidationError as e:
        _print_validation_errors(e)
        raise typer.Exit(code=1)

    _print_execution(execution)

    if not execution.succeeded:
        console.print(f"\n[bold red]Workflow {execution.status.value}:[/bold red] {escape(execution.error or '')}")
        raise typer.Exit(code=1)

    console.print("\n[bold green]Workflow output:[/bold green]")
    console.print_json(json.dumps(execution.finalOutput, default=str))


@app.command()
def validate(
    workflow_file: Path = typer.Argument(..., help="Workflow JSON file"),
):
    """Validate a workflow without running it."""
    workflow = _load_workflow(workflow_file)
    engine = WorkflowEngine(create_default_registry())

    try:
        engine.validate_workflow(workflow)
    except GraphValidationError as e:
        _print_validation_errors(e)
        raise typer.Exit(code=1)

    console.print(
        f"[bold green]✓[/bold green] {workflow.name}: "
        f"{len(workflow.nodes)} nodes, {len(workflow.edges)} edges"
    )


@app.command()
def templates():
    """List the built-in workflow templates."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="yellow")
    table.add_column("Category", style="blue")
    table.add_column("Nodes", justify="right")
    table.add_column("Description", style="white")

    for summary in get_workflow_templates():
        table.add_row(
            summary["id"],
            summary["name"],
            summary["category"],
            str(summary["nodeCount"]),
            summary["description"],
        )

    console.print(table)


@app.command("export-template")
def export_template(
    template_id: str = typer.Argument(..., help="Template ID"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Name for the new workflow"),
):
    """Instantiate a template as workflow JSON."""
    if get_workflow_template(template_id) is None:
        console.print(f"[red]Unknown template: {template_id}[/red]")
        raise typer.Exit(code=1)

    workflow = instantiate_template(template_id, name=name)
    payload = workflow.to_json()

    if output:
        output.write_text(payload, encoding="utf-8")
        console.print(f"Wrote {workflow.name} to {output}")
    else:
        typer.echo(payload)


@app.command("node-types")
def node_types():
    """List the registered node types."""
    engine = WorkflowEngine(create_default_registry())

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan", no_wrap=True)
    table.add_column("Name", style="yellow")
    table.add_column("Category", style="blue")
    table.add_column("Description", style="white")

    for definition in engine.get_available_node_types():
        table.add_row(
            definition["type"],
            definition["displayName"],
            definition["category"].value,
            definition["description"],
        )

    console.print(table)


if __name__ == "__main__":
    app()
