"""Scalebench CLI."""

from __future__ import annotations

import logging
import uuid as uuid_lib
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from scalebench import __version__
from scalebench._constants import DEFAULT_CONFIG, DEFAULT_METRICS_DIRECTORY
from scalebench.config import (
    ConfigError,
    ConfigValidationError,
    ScaleBenchConfig,
    generate_example_config_yaml,
    load_config,
    validate_config,
)
from scalebench.k8s import K8sError, get_k8s_client
from scalebench.metrics import LatencyQuantiles, LocalIndexer
from scalebench.workerscale import (
    ManagedCliError,
    RosaCli,
    ScaleSetupError,
    build_request,
    get_machine_sets,
    get_scenario,
    plan_allocation,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="scalebench",
    help="Measure worker node scale-up latency on OpenShift clusters",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog="[dim]Workflow: init -> check -> plan -> workers-scale[/dim]",
)

console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]OK[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARN[/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]...[/blue] {message}")


def setup_logging(level: str) -> None:
    """Route library logging through rich at the requested level."""
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        print_error(f"Unknown log level: {level}")
        raise typer.Exit(1)
    logging.basicConfig(
        level=numeric,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # Keep the kubernetes client quiet below warnings
    logging.getLogger("kubernetes").setLevel(max(numeric, logging.WARNING))
    logging.getLogger("urllib3").setLevel(max(numeric, logging.WARNING))


def load_or_default(config_file: Path | None) -> ScaleBenchConfig:
    """Load the config file, ./scalebench.yaml, or built-in defaults.

    Exits with status 1 on configuration errors.
    """
    path = config_file
    if path is None and Path(DEFAULT_CONFIG).exists():
        path = Path(DEFAULT_CONFIG)
    try:
        if path is None:
            return validate_config({})
        return load_config(path)
    except ConfigValidationError as e:
        print_error("Config validation failed:")
        for err in e.errors:
            loc = ".".join(str(x) for x in err["loc"])
            console.print(f"  [red]•[/red] {loc}: {err['msg']}")
        raise typer.Exit(1)  # noqa: B904
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904


def apply_overrides(cfg: ScaleBenchConfig, overrides: dict) -> ScaleBenchConfig:
    """Overlay CLI flag values (None = not given) on the loaded config."""
    data = cfg.model_dump()
    for dotted, value in overrides.items():
        if value is None:
            continue
        section, _, key = dotted.rpartition(".")
        target = data[section] if section else data
        target[key] = value
    try:
        return validate_config(data)
    except ConfigValidationError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904


def _quantiles_table(quantiles: list[LatencyQuantiles]) -> Table:
    table = Table(title="Scale-up latency (ms)")
    table.add_column("Dimension", style="cyan")
    for column in ("P50", "P95", "P99", "Min", "Max", "Avg", "Count"):
        table.add_column(column, justify="right")
    for q in quantiles:
        table.add_row(
            q.quantile_name,
            str(q.p50),
            str(q.p95),
            str(q.p99),
            str(q.min),
            str(q.max),
            str(q.avg),
            str(q.count),
        )
    return table


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Scalebench version {__version__}")


@app.command()
def init(
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Output file path for configuration",
        ),
    ] = Path(DEFAULT_CONFIG),
    name: Annotated[
        str,
        typer.Option(
            "--name",
            "-n",
            help="Run name",
        ),
    ] = "workers-scale",
    additional_worker_nodes: Annotated[
        int,
        typer.Option(
            "--additional-worker-nodes",
            "-w",
            help="Worker nodes to add",
        ),
    ] = 3,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing file",
        ),
    ] = False,
) -> None:
    """Generate a starter configuration file."""
    if output.exists() and not force:
        print_error(f"File already exists: {output}")
        print_info("Use --force to overwrite")
        raise typer.Exit(1)

    content = generate_example_config_yaml()
    content = content.replace("name: workers-scale", f"name: {name}", 1)
    content = content.replace(
        "additional_worker_nodes: 3", f"additional_worker_nodes: {additional_worker_nodes}", 1
    )
    output.write_text(content)
    print_success(f"Created configuration file: {output}")
    print_info("Preview the allocation with: scalebench plan")


@app.command()
def check(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Configuration file (default: ./scalebench.yaml)"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show context details")] = False,
) -> None:
    """Check cluster access (and the rosa CLI for managed clusters) before a run."""
    cfg = load_or_default(config_file)
    print_success(f"Configuration valid (scenario: {cfg.scenario_name()})")
    failed = 0

    console.print("\n[bold]Kubernetes Connectivity[/bold]")
    try:
        k8s = get_k8s_client(cfg.kubernetes.context, cfg.kubernetes.kubeconfig)
    except K8sError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    connected, msg = k8s.test_connectivity()
    if connected:
        print_success(msg)
    else:
        print_error(msg)
        failed += 1

    ctx = k8s.get_current_context()
    if ctx and verbose:
        console.print(f"  Context: {ctx.name}")
        console.print(f"  Cluster: {ctx.cluster}")

    if connected:
        try:
            groups = get_machine_sets(k8s)
        except K8sError as e:
            print_error(f"Cannot list MachineSets: {e}")
            failed += 1
        else:
            count = sum(len(names) for names in groups.values())
            if count:
                print_success(f"{count} worker MachineSets found")
            elif not cfg.managed.hcp:
                print_warning("No worker MachineSets found")

    if cfg.managed.enabled:
        console.print("\n[bold]Managed Cluster[/bold]")
        try:
            RosaCli(login_env=cfg.managed.login_env).verify()
            print_success("rosa CLI installed and logged in")
        except ManagedCliError as e:
            print_error(str(e))
            failed += 1

    if failed:
        raise typer.Exit(1)


@app.command()
def plan(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Configuration file (default: ./scalebench.yaml)"),
    ] = None,
    additional_worker_nodes: Annotated[
        int | None,
        typer.Option("--additional-worker-nodes", "-w", help="Worker nodes to add"),
    ] = None,
    max_replicas_per_group: Annotated[
        int | None,
        typer.Option("--max-replicas-per-group", help="Never grow a MachineSet past this count"),
    ] = None,
    log_level: Annotated[str, typer.Option("--log-level", help="Log level")] = "warning",
) -> None:
    """Show how new workers would be spread across MachineSets. Nothing is changed."""
    setup_logging(log_level)
    cfg = apply_overrides(
        load_or_default(config_file),
        {
            "scale.additional_worker_nodes": additional_worker_nodes,
            "scale.max_replicas_per_group": max_replicas_per_group,
        },
    )

    try:
        client = get_k8s_client(cfg.kubernetes.context, cfg.kubernetes.kubeconfig)
        groups = get_machine_sets(client)
    except K8sError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    allocation = plan_allocation(
        groups, cfg.scale.additional_worker_nodes, cfg.scale.max_replicas_per_group
    )

    table = Table(title=f"Plan for {cfg.scale.additional_worker_nodes} additional workers")
    table.add_column("MachineSet", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Target", justify="right")
    for replicas in sorted(groups):
        for name in groups[replicas]:
            mutation = allocation.get(name)
            target = str(mutation.target_replicas) if mutation else "[dim]-[/dim]"
            table.add_row(name, str(replicas), target)
    console.print(table)

    planned = sum(m.increment for m in allocation.values())
    if planned < cfg.scale.additional_worker_nodes:
        print_warning(f"Only {planned} of {cfg.scale.additional_worker_nodes} workers fit the cap")


@app.command("workers-scale")
def workers_scale(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Configuration file (default: ./scalebench.yaml)"),
    ] = None,
    uuid: Annotated[
        str | None,
        typer.Option("--uuid", help="Run correlation ID (default: random UUID)"),
    ] = None,
    additional_worker_nodes: Annotated[
        int | None,
        typer.Option("--additional-worker-nodes", "-w", help="Worker nodes to add"),
    ] = None,
    max_replicas_per_group: Annotated[
        int | None,
        typer.Option("--max-replicas-per-group", help="Never grow a MachineSet past this count"),
    ] = None,
    enable_autoscaler: Annotated[
        bool | None,
        typer.Option("--enable-autoscaler/--disable-autoscaler", help="Scale via the cluster autoscaler"),
    ] = None,
    scale_event_epoch: Annotated[
        int | None,
        typer.Option("--scale-event-epoch", help="Measure an existing scale event (unix seconds)"),
    ] = None,
    gc: Annotated[
        bool | None,
        typer.Option("--gc/--no-gc", help="Restore the cluster to its prior size afterward"),
    ] = None,
    rosa: Annotated[
        bool | None,
        typer.Option("--rosa/--no-rosa", help="Scale a ROSA cluster via the rosa CLI"),
    ] = None,
    hcp: Annotated[
        bool | None,
        typer.Option("--hcp/--no-hcp", help="ROSA hosted control plane cluster"),
    ] = None,
    mc_kubeconfig: Annotated[
        str | None,
        typer.Option("--mc-kubeconfig", help="Management cluster kubeconfig (HCP)"),
    ] = None,
    metrics_directory: Annotated[
        str | None,
        typer.Option("--metrics-directory", help="Local directory for latency documents"),
    ] = None,
    log_level: Annotated[str, typer.Option("--log-level", help="Log level")] = "info",
) -> None:
    """Add worker nodes and measure how long they take to become Ready."""
    setup_logging(log_level)
    run_uuid = uuid or str(uuid_lib.uuid4())
    cfg = apply_overrides(
        load_or_default(config_file),
        {
            "scale.additional_worker_nodes": additional_worker_nodes,
            "scale.max_replicas_per_group": max_replicas_per_group,
            "scale.autoscaler_enabled": enable_autoscaler,
            "scale.scale_event_epoch": scale_event_epoch,
            "scale.gc": gc,
            "managed.enabled": rosa,
            "managed.hcp": hcp,
            "managed.mc_kubeconfig": mc_kubeconfig,
            "output.metrics_directory": metrics_directory,
        },
    )

    out_dir = cfg.output.metrics_directory
    if out_dir == DEFAULT_METRICS_DIRECTORY:
        out_dir = f"{out_dir}-{run_uuid}"

    console.print(
        Panel(
            f"Scenario: [bold]{cfg.scenario_name()}[/bold]  "
            f"Additional workers: [bold]{cfg.scale.additional_worker_nodes}[/bold]  "
            f"UUID: {run_uuid}",
            expand=False,
        )
    )

    try:
        client = get_k8s_client(cfg.kubernetes.context, cfg.kubernetes.kubeconfig)
        scenario = get_scenario(cfg, client, LocalIndexer(out_dir))
        result = scenario.orchestrate(build_request(cfg, run_uuid))
    except (K8sError, ScaleSetupError, ManagedCliError) as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    if result.quantiles:
        console.print(_quantiles_table(result.quantiles))
    if not result.converged:
        print_warning("Not every MachineSet converged; latencies cover the machines that did")

    if not result.indexed:
        print_error("Latency documents were not indexed")
        raise typer.Exit(1)
    print_success(f"Measured {len(result.records)} new nodes, documents in {out_dir}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
