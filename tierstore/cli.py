"""
tierstore CLI

Command-line interface for loading artifact trees into the store,
reading blobs back and moving inline blobs to object storage.

Usage:
    tierstore init-db                    - Create the files table
    tierstore add-directory ROOT PREFIX  - Store a directory tree
    tierstore get KEY                    - Print or save a blob
    tierstore move-to-s3                 - Move one batch to object storage
    tierstore status                     - Show storage mode and row counts
    tierstore convert-legacy-markers     - Convert old-format offload rows
"""
import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tierstore import __version__
from tierstore.config import get_settings
from tierstore.database import close_db, init_db
from tierstore.errors import NotFoundError, TierStoreError
from tierstore.models import BlobLocation
from tierstore.storage import TieredBlobStore, convert_legacy_markers, move_to_object_storage

load_dotenv()

console = Console()
err_console = Console(stderr=True)


def run(coro):
    """Run a coroutine, closing database connections afterwards."""
    async def runner():
        try:
            return await coro
        finally:
            await close_db()

    return asyncio.run(runner())


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def fail(message: str, code: int = 1) -> None:
    err_console.print(f"[red]✗ {message}[/red]")
    sys.exit(code)


@click.group()
@click.version_option(version=__version__, prog_name="tierstore")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def main(log_level: str | None):
    """
    Tiered blob storage for generated artifact trees.
    """
    configure_logging((log_level or get_settings().LOG_LEVEL).upper())


@main.command("init-db")
def init_db_command():
    """Create the files table if it does not exist."""
    run(init_db())
    console.print("[green]✓[/green] Database initialized")


@main.command("add-directory")
@click.argument("root", type=click.Path(path_type=Path))
@click.argument("prefix")
@click.option("--json", "as_json", is_flag=True, help="Print the file list as JSON")
def add_directory(root: Path, prefix: str, as_json: bool):
    """
    Store every file under ROOT with keys PREFIX/relative-path.

    Example:
        tierstore add-directory target/doc serde/1.0.0
    """
    store = TieredBlobStore.from_settings(get_settings())

    try:
        manifest = run(store.add_path(root, prefix))
    except TierStoreError as e:
        fail(str(e))

    if as_json:
        click.echo(manifest.to_json())
        return

    table = Table(title=f"{len(manifest)} files under {prefix}", header_style="bold cyan")
    table.add_column("Type", style="dim")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    for entry in manifest:
        table.add_row(entry.mime_type, entry.path, str(entry.size_bytes))
    console.print(table)


@main.command()
@click.argument("key")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Write payload to a file")
def get(key: str, output: Path | None):
    """
    Retrieve the blob stored under KEY.

    Example:
        tierstore get serde/1.0.0/index.html -o index.html
    """
    store = TieredBlobStore.from_settings(get_settings())

    try:
        blob = run(store.get(key))
    except NotFoundError as e:
        fail(str(e), code=2)
    except TierStoreError as e:
        fail(str(e))

    if output is not None:
        output.write_bytes(blob.content)
        err_console.print(
            f"[green]✓[/green] {blob.path} ({blob.mime}, {len(blob.content)} bytes) -> {output}"
        )
    else:
        sys.stdout.buffer.write(blob.content)
        sys.stdout.buffer.flush()


@main.command("move-to-s3")
@click.option("--batch-size", "-n", type=click.IntRange(min=1), default=None, help="Rows per batch")
def move_to_s3(batch_size: int | None):
    """
    Move one batch of inline blobs to object storage.

    Example:
        tierstore move-to-s3 --batch-size 5000
    """
    settings = get_settings()
    store = TieredBlobStore.from_settings(settings)
    n = batch_size or settings.MIGRATION_BATCH_SIZE

    try:
        moved = run(move_to_object_storage(store, n, concurrency=settings.MIGRATION_CONCURRENCY))
    except TierStoreError as e:
        fail(str(e))

    console.print(f"[green]✓[/green] Moved {len(moved)} blobs to object storage")


@main.command()
def status():
    """Show the storage mode and how many blobs sit in each tier."""
    settings = get_settings()
    store = TieredBlobStore.from_settings(settings)

    async def counts():
        return (
            await store.count(BlobLocation.INLINE),
            await store.count(BlobLocation.S3),
        )

    try:
        inline, offloaded = run(counts())
    except TierStoreError as e:
        fail(str(e))

    provider = settings.object_storage_provider
    table = Table(show_header=False)
    table.add_row("Mode", provider.value if provider else "relational-only")
    table.add_row("Inline blobs", str(inline))
    table.add_row("Offloaded blobs", str(offloaded))
    console.print(table)


@main.command("convert-legacy-markers")
def convert_legacy_markers_command():
    """
    Mark rows stored in the old in-s3 marker format as offloaded.

    Run once after upgrading a table written by an older deployment.
    """
    store = TieredBlobStore.from_settings(get_settings())

    try:
        converted = run(convert_legacy_markers(store))
    except TierStoreError as e:
        fail(str(e))

    console.print(f"[green]✓[/green] Converted {converted} rows")


if __name__ == "__main__":
    main()
