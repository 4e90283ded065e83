"""
SB Explorer Command-Line Interface

Provides commands to start the gateway, inspect its configuration and test
connection descriptors.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

import sys
import asyncio
from pathlib import Path
from typing import Optional

import click
import uvicorn
import yaml
from fastapi import FastAPI, Response

from sbexplorer import __version__
from sbexplorer.core.config_manager import ConfigManager, ExplorerConfig
from sbexplorer.core.logging_config import get_logger, setup_logging
from sbexplorer.services.servicebus.api import router as servicebus_router
from sbexplorer.services.servicebus.dispatcher import RequestDispatcher
from sbexplorer.services.servicebus.error_handlers import register_exception_handlers
from sbexplorer.services.servicebus.metrics import GatewayMetrics, get_metrics
from sbexplorer.services.servicebus.middleware import CorrelationMiddleware
from sbexplorer.services.servicebus.session import ClientFactory, ConnectionRegistry


@click.group()
@click.version_option(version=__version__, prog_name="sbexplorer")
@click.pass_context
def cli(ctx):
    """
    SB Explorer - Azure Service Bus inspection gateway

    Browse queues, topics and subscriptions, peek and send messages.
    """
    ctx.ensure_object(dict)


@cli.command()
@click.option(
    "--host",
    default=None,
    help="Host to bind to (default: 127.0.0.1)",
)
@click.option(
    "--port",
    default=None,
    help="Port to bind to (default: 7071)",
    type=int,
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
@click.option(
    "--log-format",
    default=None,
    type=click.Choice(["json", "text"], case_sensitive=False),
    help="Log output format",
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload on code changes (development mode)",
)
def start(
    host: Optional[str],
    port: Optional[int],
    config: Optional[Path],
    log_level: Optional[str],
    log_format: Optional[str],
    reload: bool,
):
    """
    Start the SB Explorer gateway.

    Examples:
        sbexplorer start
        sbexplorer start --port 8080
        sbexplorer start --config config.yaml --log-level DEBUG
    """
    overrides = _cli_overrides(host, port, log_level, log_format)
    try:
        explorer_config = ConfigManager().load(
            config_file=str(config) if config else None,
            cli_overrides=overrides,
        )
    except Exception as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)

    _configure_logging(explorer_config)
    server = explorer_config.server
    level = explorer_config.logging.level

    click.echo(f"Starting SB Explorer v{__version__}")
    click.echo(f"Host: {server.host}:{server.port}")
    if config:
        click.echo(f"Config: {config}")
    click.echo(f"Log Level: {level}")
    click.echo()

    try:
        if reload:
            # Reload mode re-imports the factory, which reads environment configuration only
            uvicorn.run(
                "sbexplorer.cli:create_app",
                host=server.host,
                port=server.port,
                log_level=level.lower(),
                reload=reload,
                factory=True,
                timeout_graceful_shutdown=int(server.shutdown_timeout),
            )
        else:
            app = create_app(explorer_config)
            uvicorn.run(
                app,
                host=server.host,
                port=server.port,
                log_level=level.lower(),
                timeout_graceful_shutdown=int(server.shutdown_timeout),
            )
    except KeyboardInterrupt:
        click.echo("\nShutting down SB Explorer...")
    except Exception as e:
        click.echo(f"[ERROR] Error starting SB Explorer: {e}", err=True)
        sys.exit(1)


@cli.command()
def version():
    """Show SB Explorer version."""
    click.echo(f"SB Explorer version {__version__}")


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
def config(config: Optional[Path]):
    """
    Show the resolved configuration.

    Merges defaults, the optional configuration file and SBEXPLORER_*
    environment variables, then prints the result as YAML.
    """
    try:
        explorer_config = ConfigManager().load(config_file=str(config) if config else None)
    except Exception as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)

    click.echo(yaml.safe_dump(explorer_config.model_dump(mode="json"), sort_keys=False))


@cli.command("test-connection")
@click.option("--connection-string", default=None, help="Service Bus connection string")
@click.option("--namespace", default=None, help="Namespace for Azure AD authentication")
@click.option("--tenant-id", default=None, help="Azure AD tenant id")
@click.option("--client-id", default=None, help="Managed identity client id")
def test_connection(
    connection_string: Optional[str],
    namespace: Optional[str],
    tenant_id: Optional[str],
    client_id: Optional[str],
):
    """
    Test whether a namespace is reachable with the given credentials.

    Examples:
        sbexplorer test-connection --connection-string "Endpoint=sb://..."
        sbexplorer test-connection --namespace contoso --tenant-id <tenant>
    """
    if not connection_string and not namespace:
        raise click.UsageError("Provide --connection-string or --namespace")

    descriptor = {
        "connectionString": connection_string,
        "namespace": namespace,
        "useAzureAD": bool(namespace) and not connection_string,
        "tenantId": tenant_id,
        "clientId": client_id,
    }
    valid = asyncio.run(ConnectionRegistry().test_connection(descriptor))

    if valid:
        click.echo("[OK] VALID")
    else:
        click.echo("[ERROR] INVALID", err=True)
        sys.exit(1)


def _cli_overrides(
    host: Optional[str],
    port: Optional[int],
    log_level: Optional[str],
    log_format: Optional[str],
) -> dict:
    """Nested config overrides for the options actually given."""
    overrides: dict = {}
    if host:
        overrides.setdefault("server", {})["host"] = host
    if port:
        overrides.setdefault("server", {})["port"] = port
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level.upper()
    if log_format:
        overrides.setdefault("logging", {})["format"] = log_format.lower()
    return overrides


def _configure_logging(explorer_config: ExplorerConfig) -> None:
    log = explorer_config.logging
    setup_logging(
        level=log.level,
        format_type=log.format,
        log_file=log.file,
        rotation_size=log.rotation_size,
        rotation_count=log.rotation_count,
        module_levels=log.module_levels,
    )


def create_app(
    config: Optional[ExplorerConfig] = None,
    client_factory: Optional[ClientFactory] = None,
    metrics: Optional[GatewayMetrics] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Resolved configuration; loaded from the environment if None
        client_factory: Broker client factory; Azure SDK clients if None
        metrics: Metrics collector; the process-wide instance if None

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = ConfigManager().load()
    metrics = metrics or get_metrics()

    app = FastAPI(
        title="SB Explorer",
        description="Azure Service Bus inspection gateway",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.config = config
    app.state.metrics = metrics
    app.state.dispatcher = RequestDispatcher(
        settings=config.gateway,
        factory=client_factory,
        metrics=metrics,
    )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
        }

    @app.get("/metrics")
    async def prometheus_metrics():
        """Prometheus exposition endpoint."""
        return Response(content=metrics.generate_metrics(), media_type=metrics.get_content_type())

    app.include_router(servicebus_router, tags=["Service Bus"])
    app.add_middleware(CorrelationMiddleware)

    register_exception_handlers(app)

    get_logger("sbexplorer.cli").info(
        "Application created",
        extra={"connection_header": config.gateway.connection_header},
    )
    return app


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
