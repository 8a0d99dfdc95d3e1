import logging
from collections.abc import Collection
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from nodecalc._errors import NodeNotFoundError, ProposalError
from nodecalc._graph import DependencyExtractor, build_dependency_graph
from nodecalc._io import load_snapshot, save_snapshot
from nodecalc._network import Network
from nodecalc._proposal import parse_proposal
from nodecalc._scheduler import EvaluationScheduler

from .config import ConfigError, NodecalcConfig, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Nodecalc CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]✗ {escape(message)}[/red]")
    return typer.Exit(code=1)


def _load_config() -> NodecalcConfig:
    try:
        return get_config()
    except ConfigError as e:
        raise _fail(str(e)) from e


def _load_network(snapshot_path: Path | None, config: NodecalcConfig) -> Network:
    """Load a snapshot into a network, applying settings overrides from the config."""
    path = snapshot_path or config.snapshot
    if path is None:
        msg = "No snapshot given and no [tool.nodecalc].snapshot configured"
        raise _fail(msg)

    err_console.print(f"[cyan]Loading snapshot from:[/cyan] {path}")
    try:
        snapshot = load_snapshot(path)
        network = Network(snapshot)
        if config.settings:
            network.update_settings(config.settings)
    except (OSError, ValueError) as e:
        # pydantic.ValidationError is a ValueError
        raise _fail(f"Could not load {path}: {e}") from e
    return network


def _format_value(value: float) -> str:
    return f"{value:g}"


def _nodes_table(network: Network) -> Table:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Id", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Formula")
    table.add_column("q", justify="right", style="yellow")
    table.add_column("Error", style="red")
    for node in network.nodes:
        table.add_row(
            escape(node.id),
            escape(node.name),
            escape(node.formula),
            _format_value(node.q),
            escape(node.error),
        )
    return table


@app.command()
def run(
    snapshot: Annotated[
        Path | None,
        typer.Argument(help="Path to a .json or .toml snapshot (defaults to [tool.nodecalc].snapshot)"),
    ] = None,
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Write the evaluated snapshot to this file"),
    ] = None,
    passes: Annotated[
        int,
        typer.Option("--passes", min=1, help="Maximum number of evaluation passes"),
    ] = 100,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit non-zero if any node has an error"),
    ] = False,
) -> None:
    """Evaluate a snapshot until it settles and print every node."""
    config = _load_config()
    err_console.print()
    network = _load_network(snapshot, config)

    err_console.print("[cyan]Evaluating...[/cyan]")
    scheduler = EvaluationScheduler(network)
    results = scheduler.settle(max_passes=passes)
    settled = bool(results) and not results[-1].changed
    if settled:
        err_console.print(f"[green]✓ Settled after {len(results)} pass(es)[/green]")
    else:
        err_console.print(f"[yellow]⚠ Still changing after {len(results)} pass(es)[/yellow]")
    err_console.print()

    out_console.print(Panel(_nodes_table(network), title="[bold]Nodes[/bold]", border_style="cyan"))

    output = output or config.output
    if output is not None:
        err_console.print(f"[cyan]Exporting results to:[/cyan] {output}")
        save_snapshot(network.snapshot(), output)

    errors = [node for node in network.nodes if node.error]
    if errors:
        err_console.print(f"[red]✗ {len(errors)} node(s) with errors[/red]")
        if strict:
            raise typer.Exit(code=1)


@app.command()
def check(
    snapshot: Annotated[
        Path | None,
        typer.Argument(help="Path to a .json or .toml snapshot (defaults to [tool.nodecalc].snapshot)"),
    ] = None,
) -> None:
    """Show the evaluation order of a snapshot and any dependency cycles."""
    config = _load_config()
    err_console.print()
    network = _load_network(snapshot, config)
    scheduler = EvaluationScheduler(network)
    order = scheduler.order()

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Node", style="bold")
    table.add_column("In cycle")
    cyclic = set(order.cyclic)
    for position, node_id in enumerate(order.order, start=1):
        node = network.get_node(node_id)
        marker = "[yellow]yes[/yellow]" if node_id in cyclic else ""
        table.add_row(str(position), escape(f"{node.name} ({node.id})"), marker)

    out_console.print(
        Panel(
            table,
            title="[bold]Evaluation order[/bold]",
            subtitle=f"[dim]{len(network.nodes)} nodes, {len(network.connections)} connections[/dim]",
            border_style="cyan",
        ),
    )
    if order.has_cycle:
        err_console.print(f"[yellow]⚠ Cycle between {len(order.cyclic)} node(s); they read one-pass-stale values[/yellow]")
    else:
        err_console.print("[green]✓ No dependency cycles[/green]")


@app.command()
def deps(
    node: Annotated[str, typer.Argument(help="Node id or name")],
    snapshot: Annotated[
        Path | None,
        typer.Argument(help="Path to a .json or .toml snapshot (defaults to [tool.nodecalc].snapshot)"),
    ] = None,
) -> None:
    """Show what a node depends on and what depends on it."""
    config = _load_config()
    network = _load_network(snapshot, config)
    try:
        target = network.find_node(node)
    except NodeNotFoundError as e:
        raise _fail(str(e)) from e

    graph = build_dependency_graph(network.nodes, network.connections, DependencyExtractor())

    def names(ids: Collection[str]) -> str:
        labels = [n.name for n in network.nodes if n.id in ids]
        return ", ".join(labels) or "-"

    table = Table(show_header=False, box=None)
    table.add_column(style="cyan")
    table.add_column()
    table.add_row("Depends on", escape(names(graph.predecessors(target.id))))
    table.add_row("Used by", escape(names(graph.successors(target.id))))
    table.add_row("All upstream", escape(names(graph.ancestors(target.id))))
    table.add_row("All downstream", escape(names(graph.descendants(target.id))))
    out_console.print(Panel(table, title=f"[bold]{escape(target.name)}[/bold]", border_style="cyan"))


@app.command()
def query(
    node: Annotated[str, typer.Argument(help="Node id or name")],
    snapshot: Annotated[
        Path | None,
        typer.Argument(help="Path to a .json or .toml snapshot (defaults to [tool.nodecalc].snapshot)"),
    ] = None,
) -> None:
    """Evaluate one node on demand, depth-first through its dependencies."""
    config = _load_config()
    network = _load_network(snapshot, config)
    try:
        target = network.find_node(node)
    except NodeNotFoundError as e:
        raise _fail(str(e)) from e

    outcome = network.query(target.id)
    if not outcome.success:
        raise _fail(f"{target.name}: {outcome.error}")
    out_console.print(f"{escape(target.name)} = {_format_value(outcome.value)}")


@app.command()
def admit(
    proposal: Annotated[Path, typer.Argument(help="File holding a generated answer with a ```json block")],
    snapshot: Annotated[
        Path | None,
        typer.Argument(help="Path to a .json or .toml snapshot (defaults to [tool.nodecalc].snapshot)"),
    ] = None,
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to the merged snapshot (defaults to the input snapshot)"),
    ] = None,
) -> None:
    """Merge a generated batch of nodes and connections into a snapshot."""
    config = _load_config()
    err_console.print()
    network = _load_network(snapshot, config)

    err_console.print(f"[cyan]Reading proposal from:[/cyan] {proposal}")
    try:
        batch = parse_proposal(proposal.read_text(encoding="utf-8"))
        added = network.admit(batch)
    except (OSError, ProposalError, NodeNotFoundError, ValidationError) as e:
        raise _fail(f"Could not admit proposal: {e}") from e

    destination = output or snapshot or config.snapshot
    if destination is None:
        msg = "No output path"
        raise _fail(msg)
    err_console.print(f"[cyan]Writing merged snapshot to:[/cyan] {destination}")
    save_snapshot(network.snapshot(), destination)
    err_console.print(f"[green]✓ Admitted {len(added)} node(s)[/green]")
    err_console.print()


def main() -> None:
    app()
