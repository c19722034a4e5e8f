"""Click CLI for running and inspecting the booking service."""

from __future__ import annotations

import click
import uvicorn

from booking_guard.admission.keys import key_for
from booking_guard.models import AdmissionPolicy


@click.group()
def cli() -> None:
    """booking-guard service and admission tooling."""


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
@click.option("--log-level", default="info", help="uvicorn log level.")
def serve(host: str, port: int, log_level: str) -> None:
    """Run the API with configuration read from the environment."""
    uvicorn.run(
        "booking_guard.api.app:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
        proxy_headers=True,
    )


@cli.command()
def policy() -> None:
    """Print the effective admission thresholds as JSON."""
    click.echo(AdmissionPolicy.from_env().model_dump_json(indent=2))


@cli.command("client-key")
@click.argument("ip")
@click.option("--user-agent", default="", help="User-Agent header of the client.")
def client_key_command(ip: str, user_agent: str) -> None:
    """Show the counter key a client would be tracked under."""
    click.echo(key_for(ip, user_agent, AdmissionPolicy.from_env().mobile_buckets))
