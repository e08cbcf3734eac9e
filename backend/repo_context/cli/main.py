"""CLI entrypoint for the repository retrieval service."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="ctxr", help="Repository retrieval command-line interface")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("RPCX_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    try:
        resp = requests.request(method, url, timeout=60, **kwargs)
    except requests.RequestException as exc:
        typer.echo(f"Could not reach {base}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def search(
    q: str = typer.Argument(..., help="Query text"),
    max_results: int = typer.Option(5, "--max-results", "-k", help="Number of results to return"),
    raw: bool = typer.Option(False, "--json", help="Print the full JSON response"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Search the indexed repositories."""
    resp = _request("POST", "/search", host=host, json={"query": q, "max_results": max_results})
    payload = resp.json()
    if raw:
        typer.echo(json.dumps(payload, indent=2))
        return
    if not payload.get("success"):
        typer.echo(payload.get("error") or "Search failed", err=True)
        raise typer.Exit(code=1)
    typer.echo(payload["message"])


@app.command()
def status(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show readiness and per-source indexing status."""
    ready = _request("GET", "/ready", host=host).json()
    sources = _request("GET", "/sources/status", host=host).json()
    typer.echo(json.dumps({"ready": ready, "sources": sources}, indent=2))


@app.command()
def reindex(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Start an indexing cycle on the server."""
    resp = _request("POST", "/index", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    app()
