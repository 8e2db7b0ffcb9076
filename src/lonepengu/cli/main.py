"""LonePengu CLI — run the server and drive the session lifecycle over HTTP.

Usage:
    lonepengu serve                                  # Run the API with uvicorn
    lonepengu login a@x.com --provider email         # Log in, print tokens
    lonepengu validate --token <access>              # Is the session usable?
    lonepengu refresh --token <refresh>              # New access token
    lonepengu logout --token <access>                # Invalidate the session

Tokens can also come from LONEPENGU_ACCESS_TOKEN / LONEPENGU_REFRESH_TOKEN.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from lonepengu import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url(override: Optional[str] = None) -> str:
    return (override or os.environ.get("LONEPENGU_API_URL", DEFAULT_API_URL)).rstrip("/")


def _client(api_url: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the LonePengu backend."""
    return httpx.AsyncClient(base_url=_api_url(api_url), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (e.g. CliRunner
    invoked from an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _emit(response: httpx.Response) -> None:
    """Print the JSON body; exit non-zero on an error status."""
    try:
        body = response.json()
    except ValueError:
        body = {"success": False, "message": response.text}

    if response.is_error:
        message = body.get("message", "request failed")
        code = body.get("code", response.status_code)
        click.secho(f"Error ({code}): {message}", fg="red", err=True)
        sys.exit(1)
    click.echo(_pretty_json(body))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="lonepengu")
@click.option("--api-url", envvar="LONEPENGU_API_URL", help="Backend base URL")
@click.pass_context
def main(ctx: click.Context, api_url: Optional[str]):
    """LonePengu — authentication and session lifecycle service."""
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", type=int, default=None, help="Port (default from settings)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    from lonepengu.config import settings

    uvicorn.run(
        "lonepengu.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
@click.argument("email")
@click.option(
    "--provider",
    "-p",
    default="email",
    show_default=True,
    help="Identity provider: google, email or apple",
)
@click.option("--name", help="Display name")
@click.option("--provider-id", help="Provider-side user id")
@click.option("--avatar-url", help="Avatar URL")
@click.option("--device", help='Device descriptor, e.g. "cli"')
@click.pass_context
def login(ctx: click.Context, email: str, provider: str, name: Optional[str],
          provider_id: Optional[str], avatar_url: Optional[str], device: Optional[str]):
    """Log in as EMAIL and print the issued tokens."""
    body = {
        "email": email,
        "auth_provider": provider,
        "name": name,
        "provider_id": provider_id,
        "avatar_url": avatar_url,
        "device_info": {"device": device} if device else None,
    }
    _post(ctx.obj["api_url"], "/api/auth/login", json=body)


@main.command()
@click.option("--token", envvar="LONEPENGU_ACCESS_TOKEN", required=True,
              help="Access token")
@click.pass_context
def validate(ctx: click.Context, token: str):
    """Check whether an access token's session is still active."""
    _get(ctx.obj["api_url"], "/api/auth/validate", headers=_bearer(token))


@main.command()
@click.option("--token", envvar="LONEPENGU_REFRESH_TOKEN", required=True,
              help="Refresh token")
@click.pass_context
def refresh(ctx: click.Context, token: str):
    """Exchange a refresh token for a new access token."""
    _post(ctx.obj["api_url"], "/api/auth/refresh", json={"refresh_token": token})


@main.command()
@click.option("--token", envvar="LONEPENGU_ACCESS_TOKEN", required=True,
              help="Access token")
@click.pass_context
def logout(ctx: click.Context, token: str):
    """Invalidate the session behind an access token."""
    _post(ctx.obj["api_url"], "/api/auth/logout", headers=_bearer(token))


async def _request(api_url: Optional[str], method: str, path: str, **kwargs) -> httpx.Response:
    async with _client(api_url) as c:
        try:
            return await c.request(method, path, **kwargs)
        except httpx.ConnectError:
            raise click.ClickException(f"Backend not reachable at {_api_url(api_url)}")


def _post(api_url: Optional[str], path: str, **kwargs) -> None:
    _emit(_run(_request(api_url, "POST", path, **kwargs)))


def _get(api_url: Optional[str], path: str, **kwargs) -> None:
    _emit(_run(_request(api_url, "GET", path, **kwargs)))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
