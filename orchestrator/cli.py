"""Click CLI for operators: run a message through the pipeline, inspect usage and config."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import click
import httpx
import uvicorn

from orchestrator.audit.logger import AuditLogger
from orchestrator.config.client_config import ClientConfig, ConfigurationError
from orchestrator.config.loader import FileConfigProvider
from orchestrator.pipeline.models import InputType, PipelineInput, PipelineResult, result_text
from orchestrator.pipeline.runner import GMCRPipeline
from orchestrator.providers.factory import build_providers
from orchestrator.providers.rate_limiter import SlidingWindowRateLimiter, SQLiteRateLimiter
from orchestrator.providers.state_db import StateDB
from orchestrator.providers.usage import InMemoryUsageTracker, SQLiteUsageTracker
from orchestrator.providers.xai import DEFAULT_XAI_BASE_URL


@click.group()
@click.option("--config-dir", default="config/clients", help="Directory of client config JSON files.")
@click.option("--state-db", default=None, help="SQLite state database path.")
@click.option("--audit-log", default=None, help="Audit log file path.")
@click.pass_context
def cli(
    ctx: click.Context, config_dir: str, state_db: str | None, audit_log: str | None,
) -> None:
    """GMCR orchestrator operator CLI."""
    ctx.ensure_object(dict)
    overrides: dict[str, Any] = {}
    if os.environ.get("XAI_API_KEY"):
        overrides["xai_api_key"] = os.environ["XAI_API_KEY"]
    ctx.obj["config_provider"] = FileConfigProvider(config_dir, overrides)
    ctx.obj["state_db"] = StateDB(state_db) if state_db else None
    ctx.obj["audit_logger"] = AuditLogger(audit_log) if audit_log else None
    ctx.obj["paths"] = {
        "CLIENT_CONFIG_DIR": config_dir,
        "STATE_DB_PATH": state_db,
        "AUDIT_LOG_PATH": audit_log,
    }


def _load_config(ctx: click.Context, client_id: str) -> ClientConfig:
    try:
        return asyncio.run(ctx.obj["config_provider"].get(client_id))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("message")
@click.option("--client", "client_id", default="default", help="Client id to answer as.")
@click.option("--session", "session_id", default="cli", help="Session id.")
@click.option(
    "--input-type",
    type=click.Choice([t.value for t in InputType]),
    default=InputType.CHAT.value,
    help="Channel the message is treated as coming from.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the full pipeline result as JSON.")
@click.pass_context
def chat(
    ctx: click.Context,
    message: str,
    client_id: str,
    session_id: str,
    input_type: str,
    as_json: bool,
) -> None:
    """Run MESSAGE through the GMCR pipeline and print the reply."""
    config = _load_config(ctx, client_id)
    state_db: StateDB | None = ctx.obj["state_db"]

    async def _run() -> PipelineResult:
        async with httpx.AsyncClient(timeout=30.0) as client:
            providers = build_providers(
                config,
                http_client=client,
                rate_limiter=(
                    SQLiteRateLimiter(state_db) if state_db else SlidingWindowRateLimiter()
                ),
                usage_tracker=(
                    SQLiteUsageTracker(state_db) if state_db else InMemoryUsageTracker()
                ),
                xai_base_url=os.environ.get("XAI_BASE_URL", DEFAULT_XAI_BASE_URL),
            )
            pipeline = GMCRPipeline(providers, audit_logger=ctx.obj["audit_logger"])
            return await pipeline.run(PipelineInput(
                session_id=session_id,
                message=message,
                input_type=InputType(input_type),
                client_config=config,
            ))

    try:
        result = asyncio.run(_run())
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        click.echo(result_text(result))


@cli.command()
@click.argument("session_id")
@click.option("--client", "client_id", default="default", help="Client id.")
@click.pass_context
def usage(ctx: click.Context, session_id: str, client_id: str) -> None:
    """Show usage counters recorded for SESSION_ID."""
    state_db: StateDB | None = ctx.obj["state_db"]
    if state_db is None:
        raise click.UsageError("usage requires --state-db")
    counts = SQLiteUsageTracker(state_db).get_usage(client_id, session_id)
    click.echo(json.dumps({"clientId": client_id, "sessionId": session_id, "usage": counts}, indent=2))


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP API under uvicorn."""
    # The app factory reads its settings from the environment.
    for name, value in ctx.obj["paths"].items():
        if value:
            os.environ[name] = value
    uvicorn.run("orchestrator.api.app:create_app_from_env", factory=True, host=host, port=port)


@cli.group("config")
def config_group() -> None:
    """Inspect client configuration."""


@config_group.command("show")
@click.option("--client", "client_id", default="default", help="Client id.")
@click.pass_context
def config_show(ctx: click.Context, client_id: str) -> None:
    """Print the public view of a client config (credentials removed)."""
    config = _load_config(ctx, client_id)
    click.echo(json.dumps(config.public_view(), indent=2))


if __name__ == "__main__":
    cli()
