"""Click commands: stream a kind's events, or list what the cluster serves."""

from __future__ import annotations

import asyncio
import contextlib
import json

import click

from kubemux.app import KubeMuxApp
from kubemux.config import load_config
from kubemux.errors import ConfigurationError, DiscoveryError
from kubemux.models.config import KubeMuxConfig
from kubemux.models.events import WatchEvent


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Override KUBEMUX_LOG_LEVEL.",
)
@click.option("--context", "kube_context", default=None, help="kubeconfig context to use.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, kube_context: str | None) -> None:
    """Shared Kubernetes informers."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if log_level:
        config.log.level = log_level
    if kube_context:
        config.cluster.context = kube_context
    ctx.obj = config


@cli.command()
@click.argument("kind")
@click.option("--namespace", "-n", default=None, help="Restrict to one namespace.")
@click.option("--limit", type=int, default=0, help="Exit after this many events (0 = no limit).")
@click.option("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port.")
@click.pass_obj
def watch(config: KubeMuxConfig, kind: str, namespace: str | None, limit: int, metrics_port: int | None) -> None:
    """Stream events for KIND as JSON lines."""
    if metrics_port is not None:
        config.metrics.port = metrics_port
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_watch(config, kind, namespace, limit))


@cli.command()
@click.pass_obj
def resources(config: KubeMuxConfig) -> None:
    """List every resource kind the cluster serves."""
    asyncio.run(_resources(config))


async def _watch(config: KubeMuxConfig, kind: str, namespace: str | None, limit: int) -> None:
    app = KubeMuxApp(config)
    try:
        await app.start()
    except ConfigurationError as exc:
        await app.stop()
        raise click.ClickException(str(exc)) from exc

    queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
    detach = app.subscribe(kind, namespace, queue.put_nowait)
    emitted = 0
    try:
        while True:
            event = await queue.get()
            click.echo(json.dumps(event.to_dict(), default=str))
            emitted += 1
            if event.terminal or (limit and emitted >= limit):
                break
    finally:
        detach()
        await app.stop()


async def _resources(config: KubeMuxConfig) -> None:
    app = KubeMuxApp(config)
    try:
        await app.start()
        await app.directory.discover()
    except (ConfigurationError, DiscoveryError) as exc:
        raise click.ClickException(str(exc)) from exc
    else:
        for descriptor in sorted(app.directory.resources(), key=lambda d: (d.group, d.kind)):
            scope = "Namespaced" if descriptor.namespaced else "Cluster"
            click.echo(
                f"{descriptor.kind:<40} {descriptor.group_version:<45} {descriptor.qualified_name:<55} {scope}"
            )
    finally:
        await app.stop()
