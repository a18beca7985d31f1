"""
keystore-ctl CLI for inspecting and managing a key store.
"""

import asyncio
import base64
import binascii
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar
import typer
import yaml
from rich.console import Console
from rich.table import Table

from keystore.adapters.errors import (
    KeyExistsError,
    KeyNotFoundError,
    KeyStoreError,
    StoreConnectionError,
    StoreUnavailableError,
)
from keystore.adapters.keystore import KeyStore
from keystore.core.config import Settings, load_merged_config
from keystore.core.factory import connect_keystore
from keystore.observability.logging import setup_logging

app = typer.Typer(
    name="keystore-ctl",
    help="Key store management CLI",
    add_completion=False
)

console = Console()

T = TypeVar("T")


class StoreOptions:
    """Connection options shared by every command."""

    def __init__(
        self,
        config_file: Optional[str] = None,
        backend: Optional[str] = None,
        connection_string: Optional[str] = None,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.config_file = config_file
        self.backend = backend
        self.connection_string = connection_string
        self.database = database
        self.collection = collection
        self.timeout = timeout

    def settings(self) -> Settings:
        return load_merged_config(
            self.config_file,
            backend=self.backend,
            mongodb_connection_string=self.connection_string,
            mongodb_database=self.database,
            mongodb_collection=self.collection,
            operation_timeout=self.timeout,
            enable_metrics=False,
        )


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]✗[/red] {message}")
    sys.exit(1)


def run_with_store(options: StoreOptions, action: Callable[[KeyStore], Awaitable[T]]) -> T:
    """Connect a store, run ``action`` against it and close it again."""
    settings = options.settings()
    setup_logging(settings.log_level, settings.log_format)

    async def _run() -> T:
        store = await connect_keystore(settings)
        try:
            return await action(store)
        finally:
            await store.close()

    try:
        return asyncio.run(_run())
    except KeyNotFoundError as e:
        fail(f"Key '{e.name}' not found")
    except KeyExistsError as e:
        fail(f"Key '{e.name}' already exists")
    except StoreUnavailableError as e:
        fail(f"Key store unavailable: {e}")
    except StoreConnectionError as e:
        fail(f"Failed to connect to key store: {e}")
    except KeyStoreError as e:
        fail(f"Key store error: {e}")
    except ValueError as e:
        fail(str(e))


# Option declarations shared by the commands below
ConfigOption = typer.Option(None, "--config", "-c", help="Config file path")
BackendOption = typer.Option(None, "--backend", help="Backend: mongodb, memory")
ConnectionOption = typer.Option(None, "--connection-string", help="MongoDB connection string")
DatabaseOption = typer.Option(None, "--database", help="MongoDB database")
CollectionOption = typer.Option(None, "--collection", help="MongoDB collection")
TimeoutOption = typer.Option(None, "--timeout", help="Per-operation deadline in seconds")


@app.command()
def status(
    config: Optional[str] = ConfigOption,
    backend: Optional[str] = BackendOption,
    connection_string: Optional[str] = ConnectionOption,
    database: Optional[str] = DatabaseOption,
    collection: Optional[str] = CollectionOption,
    timeout: Optional[float] = TimeoutOption,
):
    """Probe the key store backend."""
    options = StoreOptions(config, backend, connection_string, database, collection, timeout)
    state = run_with_store(options, lambda store: store.status())
    latency_ms = state.latency.total_seconds() * 1000
    console.print(f"[green]✓[/green] Key store reachable (latency {latency_ms:.2f} ms)")


@app.command()
def create(
    name: str = typer.Argument(..., help="Key name"),
    value: Optional[str] = typer.Option(None, "--value", help="Key value as text"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Read the key value from a file"),
    b64: Optional[str] = typer.Option(None, "--base64", help="Key value as base64"),
    config: Optional[str] = ConfigOption,
    backend: Optional[str] = BackendOption,
    connection_string: Optional[str] = ConnectionOption,
    database: Optional[str] = DatabaseOption,
    collection: Optional[str] = CollectionOption,
    timeout: Optional[float] = TimeoutOption,
):
    """Create a new key."""
    sources = [source for source in (value, file, b64) if source is not None]
    if len(sources) != 1:
        fail("Exactly one of --value, --file or --base64 is required")

    if value is not None:
        data = value.encode("utf-8")
    elif file is not None:
        file_path = Path(file)
        if not file_path.exists():
            fail(f"File not found: {file}")
        data = file_path.read_bytes()
    else:
        try:
            data = base64.b64decode(b64, validate=True)
        except binascii.Error as e:
            fail(f"Invalid base64 value: {e}")

    options = StoreOptions(config, backend, connection_string, database, collection, timeout)
    run_with_store(options, lambda store: store.create(name, data))
    console.print(f"[green]✓[/green] Key '{name}' created")


@app.command()
def get(
    name: str = typer.Argument(..., help="Key name"),
    output: str = typer.Option("raw", "-o", "--output", help="Output format: raw, base64"),
    config: Optional[str] = ConfigOption,
    backend: Optional[str] = BackendOption,
    connection_string: Optional[str] = ConnectionOption,
    database: Optional[str] = DatabaseOption,
    collection: Optional[str] = CollectionOption,
    timeout: Optional[float] = TimeoutOption,
):
    """Print the value of a key."""
    if output not in ("raw", "base64"):
        fail(f"Unknown output format: {output}")

    options = StoreOptions(config, backend, connection_string, database, collection, timeout)
    data = run_with_store(options, lambda store: store.get(name))

    if output == "base64":
        typer.echo(base64.b64encode(data).decode("ascii"))
    else:
        typer.echo(data, nl=False)


@app.command()
def delete(
    name: str = typer.Argument(..., help="Key name"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation"),
    config: Optional[str] = ConfigOption,
    backend: Optional[str] = BackendOption,
    connection_string: Optional[str] = ConnectionOption,
    database: Optional[str] = DatabaseOption,
    collection: Optional[str] = CollectionOption,
    timeout: Optional[float] = TimeoutOption,
):
    """Delete a key."""
    if not yes:
        if not typer.confirm(f"Are you sure you want to delete key '{name}'?"):
            console.print("Aborted.")
            return

    options = StoreOptions(config, backend, connection_string, database, collection, timeout)
    run_with_store(options, lambda store: store.delete(name))
    console.print(f"[green]✓[/green] Key '{name}' deleted")


@app.command("list")
def list_keys(
    prefix: str = typer.Option("", "--prefix", "-p", help="Only list names with this prefix"),
    limit: int = typer.Option(0, "--limit", "-n", help="Maximum number of names, 0 for all"),
    output: str = typer.Option("table", "-o", "--output", help="Output format: table, json, yaml"),
    config: Optional[str] = ConfigOption,
    backend: Optional[str] = BackendOption,
    connection_string: Optional[str] = ConnectionOption,
    database: Optional[str] = DatabaseOption,
    collection: Optional[str] = CollectionOption,
    timeout: Optional[float] = TimeoutOption,
):
    """List key names."""
    options = StoreOptions(config, backend, connection_string, database, collection, timeout)
    result = run_with_store(options, lambda store: store.list(prefix, limit))
    data: dict[str, Any] = {"names": result.names, "last_name": result.last_name}

    if output == "json":
        print(json.dumps(data, indent=2))
    elif output == "yaml":
        print(yaml.dump(data, default_flow_style=False))
    else:  # table
        if not result.names:
            console.print("[yellow]No keys found[/yellow]")
            return

        table = Table(title="Keys")
        table.add_column("Name", style="cyan", no_wrap=True)
        for name in result.names:
            table.add_row(name)
        console.print(table)


def main():
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
