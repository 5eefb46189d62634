"""castmint operator CLI."""
import json
from typing import Optional

import typer

from castmint import settings
from castmint.errors import StoreConnectionError
from castmint.queue.dedup import DedupGate
from castmint.queue.mint_queue import MintQueue
from castmint.queue.store import QueueStore

app = typer.Typer(
    help="castmint - inspect and operate the mint queue",
    no_args_is_help=True,
)
failed_app = typer.Typer(help="Failed mint operations", no_args_is_help=True)
app.add_typer(failed_app, name="failed")


def _open_queue():
    if not settings.REDIS_URL:
        print("error: REDIS_URL is required", file=typer.get_text_stream("stderr"))
        raise typer.Exit(code=1)
    store = QueueStore(settings.REDIS_URL)
    queue = MintQueue(store, settings.MINT_QUEUE_KEY, settings.FAILED_QUEUE_KEY)
    dedup = DedupGate(store, settings.PROCESSED_SET_KEY)
    return store, queue, dedup


def _fail(e: Exception):
    print(f"error: {e}", file=typer.get_text_stream("stderr"))
    raise typer.Exit(code=1)


@app.command()
def health():
    """Show pending and failed queue sizes."""
    store, queue, _ = _open_queue()
    try:
        print(json.dumps({"currentQueueSize": queue.size(), "failedCount": queue.failed_size()}))
    except StoreConnectionError as e:
        _fail(e)
    finally:
        store.close()


@app.command()
def pending(
    count: int = typer.Option(10, "--count", "-n", help="Number of items to show"),
):
    """List the next pending items, oldest first."""
    store, queue, _ = _open_queue()
    try:
        for item in queue.peek(count):
            print(f"{item.work_hash}\t{item.target_hash}\t@{item.requester.username}\t{item.submitted_at}")
    except StoreConnectionError as e:
        _fail(e)
    finally:
        store.close()


@failed_app.command(name="list")
def list_failed(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of items to show"),
):
    """List failed mints, most recent first."""
    store, queue, _ = _open_queue()
    try:
        for failed in queue.failed_items(0, max(limit, 1) - 1):
            step = failed.failed_step or "-"
            print(f"{failed.failed_at}\t{failed.item.target_hash}\t{step}\t{failed.failure_reason}")
    except StoreConnectionError as e:
        _fail(e)
    finally:
        store.close()


@failed_app.command(name="requeue")
def requeue_failed(
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of items to requeue"),
):
    """Move failed mints back onto the pending queue."""
    store, queue, dedup = _open_queue()
    try:
        moved = queue.requeue_failed(dedup, limit=limit)
        print(f"Requeued {moved} item(s)")
    except StoreConnectionError as e:
        _fail(e)
    finally:
        store.close()


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
