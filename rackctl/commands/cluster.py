import logging
from pathlib import Path
from typing import Optional

import typer

from rackctl.config import load_options
from rackctl.errors import RackctlError
from rackctl.modules.models import ClusterHealth, LifecycleResult, NodeRole
from rackctl.modules.orchestrator import ClusterOrchestrator
from rackctl.modules.topology import parse_host

logger = logging.getLogger("rackctl.commands.cluster")

app = typer.Typer(help="Bring up, validate and inspect the cluster.")

EXIT_FAILURE = 1
EXIT_NOT_SUPPORTED = 3


def build_orchestrator(config: Optional[Path] = None, **overrides) -> ClusterOrchestrator:
    """Load options and build an orchestrator for one command."""
    options = load_options(config, overrides=overrides)
    return ClusterOrchestrator(options)


def _fail(error: Exception) -> None:
    logger.debug("Command failed", exc_info=True)
    logger.error(f"❌ {error}")
    raise typer.Exit(code=EXIT_FAILURE)


def _lifecycle_exit(result: LifecycleResult, operation: str) -> None:
    if result == LifecycleResult.NOT_SUPPORTED:
        typer.echo(f"⚠️  {operation} is not supported.", err=True)
        raise typer.Exit(code=EXIT_NOT_SUPPORTED)


@app.command("up")
def cluster_up(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML options file"),
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-p", min=1, help="Provision up to N nodes at once (default: 1)"
    ),
):
    """Provision the master, then every node, then write the kubeconfig."""
    try:
        report = build_orchestrator(config, node_parallelism=parallel).bring_up()
    except RackctlError as e:
        _fail(e)
    typer.echo(f"✅ Cluster is up at {report.server}")
    typer.echo(f"   kubeconfig: {report.kubeconfig} (context {report.context}, user {report.auth.user})")


@app.command("validate")
def cluster_validate(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML options file"),
):
    """Validate the cluster; print troubleshooting tables on failure."""
    try:
        health = build_orchestrator(config).validate()
    except RackctlError as e:
        _fail(e)
    if health != ClusterHealth.HEALTHY:
        raise typer.Exit(code=EXIT_FAILURE)
    typer.echo("✅ Cluster validation passed.")


@app.command("troubleshoot")
def cluster_troubleshoot(
    host: str = typer.Option(..., "--host", help="Host address, user@ip"),
    role: NodeRole = typer.Option(NodeRole.NODE, "--role", help="Which daemon set to probe"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML options file"),
):
    """Show daemon status on a single host."""
    try:
        orchestrator = build_orchestrator(config)
        results = orchestrator.troubleshoot(parse_host(host), role)
    except RackctlError as e:
        _fail(e)
    if not all(r.active for r in results):
        raise typer.Exit(code=EXIT_FAILURE)


@app.command("topology")
def cluster_topology(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML options file"),
):
    """Print the resolved master and nodes."""
    try:
        topology = build_orchestrator(config).topology()
    except RackctlError as e:
        _fail(e)
    typer.echo(f"master  {topology.master.ip:<16} {topology.master}")
    for node in topology.nodes:
        typer.echo(f"node    {node.ip:<16} {node}")


@app.command("down")
def cluster_down(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML options file"),
):
    """Tear the cluster down (not supported)."""
    try:
        result = build_orchestrator(config).tear_down()
    except RackctlError as e:
        _fail(e)
    _lifecycle_exit(result, "Cluster teardown")


@app.command("push")
def cluster_push(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML options file"),
):
    """Update cluster binaries in place (not supported)."""
    try:
        result = build_orchestrator(config).push()
    except RackctlError as e:
        _fail(e)
    _lifecycle_exit(result, "Cluster update")
