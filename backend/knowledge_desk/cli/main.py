"""CLI entrypoint for Knowledge Desk."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="kdesk", help="Knowledge Desk command-line interface")
collections_app = typer.Typer(name="collections")
app.add_typer(collections_app, name="collections")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("KDESK_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=300, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2, ensure_ascii=False))


@collections_app.command("list")
def list_collections(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List collections."""
    _echo(_request("GET", "/collections", host=host))


@collections_app.command("create")
def create_collection(
    name: str = typer.Argument(..., help="Collection name"),
    description: Optional[str] = typer.Option(None, "--description", help="Free-form description"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Create a collection."""
    _echo(_request("POST", "/collections", host=host, json={"name": name, "description": description}))


@app.command()
def upload(
    collection_id: int = typer.Argument(..., help="Target collection id"),
    paths: list[Path] = typer.Argument(..., help="Files to upload"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Upload files into a collection without ingesting them."""
    handles = [path.expanduser().open("rb") for path in paths]
    try:
        files = [("files", (path.name, handle)) for path, handle in zip(paths, handles)]
        resp = _request(
            "POST",
            "/documents/upload",
            host=host,
            params={"collection_id": collection_id},
            files=files,
        )
    finally:
        for handle in handles:
            handle.close()
    _echo(resp)


@app.command()
def paste(
    collection_id: int = typer.Argument(..., help="Target collection id"),
    text: str = typer.Argument(..., help="Text content"),
    filename: Optional[str] = typer.Option(None, "--filename", help="Display name"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Create a document from pasted text."""
    payload = {"collection_id": collection_id, "text": text, "filename": filename}
    _echo(_request("POST", "/documents/paste", host=host, json=payload))


@app.command()
def ingest(
    doc_id: int = typer.Argument(..., help="Document id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Chunk, embed and index an uploaded document."""
    _echo(_request("POST", f"/documents/{doc_id}/ingest", host=host))


@app.command()
def status(
    doc_id: int = typer.Argument(..., help="Document id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show ingest status and progress for a document."""
    _echo(_request("GET", f"/documents/{doc_id}", host=host))


@app.command()
def search(
    collection_id: int = typer.Argument(..., help="Collection id"),
    q: str = typer.Argument(..., help="Query text"),
    k: int = typer.Option(10, "--k", help="Number of results to return"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Run hybrid search with reranking."""
    payload = {"collection_id": collection_id, "query": q, "top_k": k}
    _echo(_request("POST", "/search", host=host, json=payload))


if __name__ == "__main__":
    app()
