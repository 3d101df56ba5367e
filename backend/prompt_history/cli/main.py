"""CLI entrypoint for Prompt History."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Optional

import requests
import typer

from prompt_history.core.config import Settings, get_settings

app = typer.Typer(name="phist", help="Prompt History command-line interface")

DEFAULT_HOST = "http://127.0.0.1:3000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("PHIST_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json().get("error", resp.text)
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _load_settings(config: Optional[Path]) -> Settings:
    return Settings.from_yaml(config) if config else get_settings()


def _entry_path(page: str, entry_id: str, action: str = "") -> str:
    suffix = f"/{action}" if action else ""
    return f"/pages/{page}/entries/{entry_id}{suffix}"


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config.yaml"),
) -> None:
    """Serve the history pages and record every stdin line as a copied prompt."""
    from prompt_history.app import create_app
    from prompt_history.history import CopyGate, HistoryStore
    from prompt_history.server import LocalServer

    settings = _load_settings(config)
    store = HistoryStore.from_settings(settings).load()
    gate = CopyGate(store, settings.copy_debounce_sec)
    server = LocalServer(
        create_app(store=store),
        store,
        settings.history_server_port,
        settings.history_port_search,
    )
    port = server.start()
    typer.echo(f"Serving {store.live_html_path} on http://127.0.0.1:{port}", err=True)
    try:
        for line in sys.stdin:
            outcome = gate.copy(line)
            if outcome.entry is not None:
                typer.echo(outcome.entry.id)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


@app.command()
def render(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config.yaml"),
) -> None:
    """Regenerate every history page from its JSON file."""
    from prompt_history.history import HistoryStore

    store = HistoryStore.from_settings(_load_settings(config)).load()
    typer.echo(json.dumps({"pages": store.page_keys(), "live": str(store.live_html_path)}, indent=2))


@app.command()
def pages(
    host: Optional[str] = typer.Option(None, "--host", help="Override server host"),
) -> None:
    """List the live page and archive pages."""
    resp = _request("GET", "/pages", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command("list")
def list_entries(
    page: str = typer.Option("live", "--page", help="Page key: live or YYYYMMDD"),
    host: Optional[str] = typer.Option(None, "--host", help="Override server host"),
) -> None:
    """List entries on one page."""
    resp = _request("GET", f"/pages/{page}/entries", host=host)
    for entry in resp.json()["entries"]:
        first_line = entry["lines"][0] if entry["lines"] else ""
        typer.echo(f"{entry['id']}  {entry['ts']}  {first_line}")


@app.command()
def show(
    entry_id: str = typer.Argument(..., help="History id"),
    page: str = typer.Option("live", "--page", help="Page key: live or YYYYMMDD"),
    host: Optional[str] = typer.Option(None, "--host", help="Override server host"),
) -> None:
    """Show one entry."""
    resp = _request("GET", _entry_path(page, entry_id), host=host)
    typer.echo(json.dumps(resp.json()["entry"], indent=2, ensure_ascii=False))


@app.command()
def overwrite(
    entry_id: str = typer.Argument(..., help="History id"),
    text: str = typer.Argument(..., help="Replacement prompt text"),
    page: str = typer.Option("live", "--page", help="Page key: live or YYYYMMDD"),
    host: Optional[str] = typer.Option(None, "--host", help="Override server host"),
) -> None:
    """Replace an entry's prompt text."""
    resp = _request("POST", _entry_path(page, entry_id, "overwrite"), host=host, json={"prompt": text})
    typer.echo(json.dumps(resp.json()["entry"], indent=2, ensure_ascii=False))


@app.command()
def delete(
    entry_id: str = typer.Argument(..., help="History id"),
    page: str = typer.Option("live", "--page", help="Page key: live or YYYYMMDD"),
    host: Optional[str] = typer.Option(None, "--host", help="Override server host"),
) -> None:
    """Delete an entry and its image."""
    resp = _request("POST", _entry_path(page, entry_id, "delete"), host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def attach(
    entry_id: str = typer.Argument(..., help="History id"),
    image: Path = typer.Argument(..., help="PNG, JPEG or WebP file"),
    page: str = typer.Option("live", "--page", help="Page key: live or YYYYMMDD"),
    host: Optional[str] = typer.Option(None, "--host", help="Override server host"),
) -> None:
    """Attach or replace an entry's image."""
    path = image.expanduser()
    with path.open("rb") as fh:
        resp = _request(
            "POST",
            _entry_path(page, entry_id, "image"),
            host=host,
            files={"file": (path.name, fh)},
        )
    typer.echo(json.dumps(resp.json()["entry"], indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app()
