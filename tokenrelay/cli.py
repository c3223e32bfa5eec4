# -*- coding: utf-8 -*-

# Token Relay
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Command line client.

Usage:
    tokenrelay login --email user@example.com
    tokenrelay request GET /profile
    tokenrelay --target coin request POST /orders --data '{"symbol": "BTC"}'
    tokenrelay status
    tokenrelay logout

The session is kept in a JSON credentials file between runs, one file
per target.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
import httpx
from loguru import logger

from tokenrelay.config import API_TARGETS, APP_TITLE, APP_VERSION, CREDENTIALS_FILE, DEFAULT_TARGET, LOG_LEVEL
from tokenrelay.credential_store import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_ID_KEY, FileCredentialStore
from tokenrelay.exceptions import ClientError
from tokenrelay.http_client import AuthHttpClient, create_client
from tokenrelay.notifier import CallbackNotifier
from tokenrelay.transport import decode_body


class InterceptHandler(logging.Handler):
    """
    Intercepts logs from standard logging and redirects them to loguru.

    httpx and httpcore log through the standard logging module.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller frame for correct source display
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configures loguru output and routes httpx logging into it."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )

    for logger_name in ("httpx", "httpcore"):
        logging_logger = logging.getLogger(logger_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False


def credentials_path_for(base_path: str, target: str) -> Path:
    """
    Returns the credentials file of a target.

    The default target uses base_path itself, other targets get a
    suffixed sibling (credentials.json -> credentials.coin.json).
    """
    path = Path(base_path).expanduser()
    if target == DEFAULT_TARGET:
        return path
    return path.with_name(f"{path.stem}.{target}{path.suffix}")


def _print_response(response: httpx.Response) -> None:
    body = decode_body(response)
    if isinstance(body, (dict, list)):
        click.echo(json.dumps(body, indent=2, ensure_ascii=False))
    elif body:
        click.echo(body)


def _run_with_client(ctx: click.Context, action: Callable[[AuthHttpClient], Awaitable[Any]]) -> Any:
    """Builds the client for the selected target, runs the action, maps errors to exit code 1."""
    options = ctx.obj

    async def _run():
        client = create_client(
            options["target"],
            store=FileCredentialStore(str(options["credentials"])),
            notifier=CallbackNotifier(lambda message: click.echo(f"! {message}", err=True)),
            base_url=options["base_url"],
        )
        async with client:
            return await action(client)

    try:
        return asyncio.run(_run())
    except ClientError as e:
        click.echo(f"ERROR: {e.message}", err=True)
        sys.exit(1)


@click.group()
@click.option("--target", type=click.Choice(sorted(API_TARGETS)), default=DEFAULT_TARGET, show_default=True,
              help="Backend to talk to")
@click.option("--base-url", default=None, help="Override the target's base URL")
@click.option("--credentials", default=CREDENTIALS_FILE, show_default=True, help="Credentials file")
@click.option("--log-level", default=LOG_LEVEL, show_default=True, help="Log level")
@click.version_option(APP_VERSION, prog_name=APP_TITLE)
@click.pass_context
def cli(ctx: click.Context, target: str, base_url: Optional[str], credentials: str, log_level: str):
    """Token Relay - authenticated API client."""
    setup_logging(log_level.upper())
    ctx.obj = {
        "target": target,
        "base_url": base_url,
        "credentials": credentials_path_for(credentials, target),
    }


@cli.command()
@click.option("--email", required=True, help="Account email")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
@click.pass_context
def login(ctx: click.Context, email: str, password: str):
    """Log in and store the session."""
    async def _login(client: AuthHttpClient):
        await client.login(email=email, password=password)
        return client.token_state.user_id

    user_id = _run_with_client(ctx, _login)
    click.echo(f"✓ Logged in (user_id: {user_id or '-'})")


@cli.command()
@click.pass_context
def logout(ctx: click.Context):
    """Log out and forget the stored session."""
    async def _logout(client: AuthHttpClient):
        if not client.is_authenticated:
            return False
        await client.logout()
        return True

    if _run_with_client(ctx, _logout):
        click.echo("✓ Logged out")
    else:
        click.echo("Not logged in.")


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the stored session. Read-only: the credentials file is not modified."""
    store = FileCredentialStore(str(ctx.obj["credentials"]))
    access_token = store.get(ACCESS_TOKEN_KEY)
    refresh_token = store.get(REFRESH_TOKEN_KEY)
    user_id = store.get(USER_ID_KEY)

    click.echo(f"Target: {ctx.obj['target']}")
    click.echo(f"Credentials: {store.path}")
    if access_token and refresh_token:
        click.echo(f"Session: active (user_id: {user_id or '-'})")
    elif access_token or refresh_token:
        click.echo("Session: incomplete (log in again)")
    else:
        click.echo("Session: none")


@cli.command()
@click.argument("method", type=click.Choice(["GET", "POST", "PUT", "PATCH", "DELETE"], case_sensitive=False))
@click.argument("path")
@click.option("--data", default=None, help="JSON request body")
@click.pass_context
def request(ctx: click.Context, method: str, path: str, data: Optional[str]):
    """Send an authenticated request and print the response body."""
    body = None
    if data is not None:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--data")

    async def _request(client: AuthHttpClient):
        return await client.request(method, path, json=body)

    response = _run_with_client(ctx, _request)
    _print_response(response)


def main():
    cli()


if __name__ == "__main__":
    main()
