"""
immich-exporter entry point.

Usage:
    immich-exporter                                  Serve /metrics and /health
    immich-exporter check                            One-shot snapshot as tables
    immich-exporter check --output json              One-shot snapshot as a JSON line
    immich-exporter watch --refresh 15               Live terminal dashboard

Settings come from flags or IMMICH_URL, IMMICH_API_KEY and LISTEN_ADDRESS.
"""

from __future__ import annotations

import json
import logging

import click

from immich_exporter import __build_date__, __commit__, __version__
from immich_exporter.client import ImmichClient
from immich_exporter.collector.immich_collector import ImmichCollector
from immich_exporter.config import DEFAULT_LISTEN_ADDRESS, ExporterConfig, load_config
from immich_exporter.errors import ConfigError


log = logging.getLogger("immich_exporter")


def _load_config(ctx) -> ExporterConfig:
    try:
        return load_config(
            ctx.obj["url"],
            ctx.obj["api_key"],
            ctx.obj["listen_address"],
        )
    except ConfigError as e:
        raise click.UsageError(str(e), ctx=ctx)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="immich-exporter")
@click.option("--url", envvar="IMMICH_URL", default=None,
              help="Immich base URL, e.g. http://immich:2283 [env: IMMICH_URL]")
@click.option("--api-key", envvar="IMMICH_API_KEY", default=None,
              help="Immich API key with admin access [env: IMMICH_API_KEY]")
@click.option("--listen-address", envvar="LISTEN_ADDRESS", default=DEFAULT_LISTEN_ADDRESS,
              show_default=True, help="Address to serve metrics on [env: LISTEN_ADDRESS]")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx, url: str, api_key: str, listen_address: str, verbose: bool):
    """Immich Prometheus exporter."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["api_key"] = api_key
    ctx.obj["listen_address"] = listen_address

    # If no subcommand, serve metrics
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@cli.command()
@click.pass_context
def serve(ctx):
    """Serve /metrics and /health until SIGINT or SIGTERM."""
    from immich_exporter.server.http_server import ExporterServer, build_registry, create_app

    config = _load_config(ctx)
    log.info("Immich Prometheus Exporter %s (commit: %s, built: %s)", __version__, __commit__, __build_date__)

    client = ImmichClient(config.immich_url, config.api_key)
    try:
        registry = build_registry(ImmichCollector(client))
        server = ExporterServer(create_app(registry, client), config.listen_host, config.listen_port)
        try:
            server.bind()
        except OSError as e:
            log.error("Cannot listen on %s: %s", config.listen_address, e)
            raise SystemExit(1)
        server.run()
    finally:
        client.close()


@cli.command()
@click.option("--output", type=click.Choice(["table", "json"]), default="table",
              help="Output mode: table (Rich) or json (one line)")
@click.pass_context
def check(ctx, output: str):
    """Take a single snapshot and print it. Exits 1 if any fetch failed."""
    config = _load_config(ctx)

    with ImmichClient(config.immich_url, config.api_key) as client:
        snapshot = ImmichCollector(client).snapshot()

    if output == "json":
        record = snapshot.summary()
        record["source"] = client.base_url
        click.echo(json.dumps(record))
    else:
        from immich_exporter.dashboard.terminal import print_snapshot
        print_snapshot(snapshot, client.base_url)

    if not snapshot.success:
        raise SystemExit(1)


@cli.command()
@click.option("--refresh", default=15.0, show_default=True, help="Refresh interval in seconds")
@click.pass_context
def watch(ctx, refresh: float):
    """Live terminal dashboard, refreshed every --refresh seconds."""
    from immich_exporter.dashboard.terminal import run_dashboard

    config = _load_config(ctx)
    with ImmichClient(config.immich_url, config.api_key) as client:
        run_dashboard(ImmichCollector(client), client.base_url, refresh_interval=refresh)


if __name__ == "__main__":
    cli()
