"""Keyforge CLI - manage API keys from the command line"""

from typing import List, Optional

import typer
from pydantic import ValidationError

from .config import get_settings
from .core.api_keys import (
    APIKeyService,
    ApiKeyCreate,
    ApiKeyResponse,
    ApiKeyType,
    ApiKeyUpdate,
    RevokeApiKey,
)
from .core.database import get_engine, init_db, wait_for_db
from .core.exceptions import KeyforgeError
from .logging_config import setup_logging

app = typer.Typer(
    name="keyforge",
    help="Keyforge CLI - issue, rotate and revoke API keys",
    no_args_is_help=True,
)


def get_service() -> APIKeyService:
    """Build the service on the configured database."""
    return APIKeyService(get_engine())


def _print_key(key: ApiKeyResponse) -> None:
    status = "active"
    if key.revoked_at is not None:
        status = f"revoked at {key.revoked_at.isoformat()} by {key.revoked_by}"
    typer.echo(f"{key.id}  {key.type.value:<11}  {key.redacted}  {key.title}  ({status})")


def _fail(message: str) -> None:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, bold=True, err=True)
    raise typer.Exit(1)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """Configure logging before running a command."""
    setup_logging(log_level or get_settings().log_level)


@app.command("init-db")
def init_db_command():
    """Create the api_keys table if it does not exist"""
    engine = get_engine()
    if not wait_for_db(engine, max_retries=5):
        _fail("Database is not reachable")
    init_db(engine)
    typer.secho("Database initialized", fg=typer.colors.GREEN)


@app.command()
def create(
    title: str = typer.Option(..., "--title", "-t", help="Label for the key"),
    key_type: ApiKeyType = typer.Option(ApiKeyType.SECRET, "--type", help="secret or publishable"),
    created_by: str = typer.Option(..., "--created-by", help="Actor creating the key"),
):
    """Create a key and print its token (shown only once)"""
    try:
        key = get_service().create_api_key(
            ApiKeyCreate(title=title, type=key_type, created_by=created_by)
        )
    except (KeyforgeError, ValidationError) as e:
        _fail(str(e))
        return

    _print_key(key)
    typer.secho(f"Token (shown only once): {key.token}", fg=typer.colors.YELLOW, bold=True)


@app.command("list")
def list_keys(
    key_type: Optional[ApiKeyType] = typer.Option(None, "--type", help="Only list this key type"),
):
    """List keys"""
    filters = {"type": key_type} if key_type else None
    keys, count = get_service().list_and_count_api_keys(filters)
    for key in keys:
        _print_key(key)
    typer.echo(f"{count} key(s)")


@app.command()
def rename(
    key_id: str = typer.Argument(..., help="Key id"),
    title: str = typer.Option(..., "--title", "-t", help="New label"),
):
    """Change the title of a key"""
    try:
        key = get_service().update_api_key(key_id, ApiKeyUpdate(title=title))
    except (KeyforgeError, ValidationError) as e:
        _fail(str(e))
        return
    _print_key(key)


@app.command()
def revoke(
    key_id: str = typer.Argument(..., help="Key id"),
    revoked_by: str = typer.Option(..., "--by", help="Actor revoking the key"),
    revoke_in: Optional[int] = typer.Option(
        None, "--in", help="Seconds until the revocation takes effect (rotation grace period)"
    ),
):
    """Revoke a key, now or after a grace period"""
    try:
        key = get_service().revoke_api_key(
            key_id, RevokeApiKey(revoked_by=revoked_by, revoke_in=revoke_in)
        )
    except (KeyforgeError, ValidationError) as e:
        _fail(str(e))
        return
    _print_key(key)


@app.command()
def delete(
    key_ids: List[str] = typer.Argument(..., help="Ids of revoked keys"),
):
    """Delete revoked keys permanently"""
    try:
        get_service().delete_api_keys(key_ids)
    except KeyforgeError as e:
        _fail(str(e))
        return
    typer.secho(f"Deleted {len(key_ids)} key(s)", fg=typer.colors.GREEN)


@app.command()
def authenticate(
    token: str = typer.Argument(..., help="Secret key token"),
):
    """Check a secret key token; exits with 1 when it does not match"""
    key = get_service().authenticate(token)
    if key is None:
        typer.secho("No matching secret key", fg=typer.colors.RED)
        raise typer.Exit(1)
    _print_key(key)


if __name__ == "__main__":
    app()
