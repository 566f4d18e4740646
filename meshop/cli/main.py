"""Click commands for running and inspecting the operator.

    meshop run        -- start the reconcile loop (same as ``python -m meshop``)
    meshop discover   -- print the cluster profile as JSON
    meshop reconcile  -- run a single reconcile cycle against the configured CR
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click

from meshop import __version__
from meshop.config import load_config
from meshop.context import ReconcileContext
from meshop.models.config import MeshopConfig
from meshop.observability.logging import setup_logging


@click.group()
@click.version_option(__version__, prog_name="meshop")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """meshop: keeps an Istio installation in line with its Istio CR."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    if log_level:
        config.log.level = log_level
    ctx.obj = config


@cli.command()
@click.pass_obj
def run(config: MeshopConfig) -> None:
    """Run the reconcile loop until SIGTERM/SIGINT."""
    from meshop.app import main

    asyncio.run(main(config))


@cli.command()
@click.pass_obj
def discover(config: MeshopConfig) -> None:
    """Classify the cluster by size, flavor and provider."""
    setup_logging(config.log.level, json_output=False)
    profile = asyncio.run(_discover(config))
    click.echo(json.dumps(profile, indent=2))


@cli.command()
@click.pass_obj
def reconcile(config: MeshopConfig) -> None:
    """Run one reconcile cycle and exit non-zero unless the CR ends Ready."""
    setup_logging(config.log.level, json_output=False)
    ok, message = asyncio.run(_reconcile_once(config))
    click.echo(message)
    if not ok:
        raise SystemExit(1)


async def _discover(config: MeshopConfig) -> dict[str, Any]:
    from meshop.app import create_api_client
    from meshop.cluster.client import KubernetesClusterClient
    from meshop.clusterconfig.discovery import ClusterTopologyDiscoverer

    api_client = await create_api_client()
    try:
        cluster = KubernetesClusterClient(api_client, config.custom_resource)
        profile = await ClusterTopologyDiscoverer(cluster, config.discovery).evaluate_cluster_profile(
            ReconcileContext()
        )
        return profile.as_dict()
    finally:
        await api_client.close()


async def _reconcile_once(config: MeshopConfig) -> tuple[bool, str]:
    from meshop.app import create_api_client
    from meshop.cluster.client import KubernetesClusterClient
    from meshop.controller import IstioController

    api_client = await create_api_client()
    try:
        cluster = KubernetesClusterClient(api_client, config.custom_resource)
        cr = await cluster.get_custom_resource()
        if cr is None:
            name = f"{config.custom_resource.namespace}/{config.custom_resource.name}"
            return False, f"Istio CR {name} not found"
        error = await IstioController(cluster, config).reconcile(ReconcileContext(), cr)
        if error is None:
            return True, "Ready"
        return False, f"{error.level.value}: {error.message}"
    finally:
        await api_client.close()
