"""Command-line chat client.

Usage:
    python -m chatrelay.client "What is on this page?" --context-file page.txt
    python -m chatrelay.client --clear

Deltas are written to stdout as they arrive; logs and status notes go to
stderr. History persists between runs in CHATRELAY_HISTORY_PATH.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

from chatrelay.client.consumer import ChatStreamConsumer
from chatrelay.client.history import HistoryStore
from chatrelay.config import ClientSettings
from chatrelay.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI parser. No side effects."""
    p = argparse.ArgumentParser(
        prog="chatrelay-client", description="Send a message to the chat relay"
    )
    p.add_argument("message", nargs="?", default=None, help="Message to send")
    p.add_argument("--clear", action="store_true", help="Clear the saved history first")
    p.add_argument("--context-file", type=Path, default=None, help="Page context to attach")
    p.add_argument("--url", default=None, help="Relay URL (overrides CHATRELAY_URL)")
    p.add_argument("--history", default=None, help="History file (overrides CHATRELAY_HISTORY_PATH)")
    return p


def _write_delta(accumulated: str, delta: str) -> None:
    sys.stdout.write(delta)
    sys.stdout.flush()


def _write_status(note: str) -> None:
    sys.stderr.write(f"[{note}]\n")


async def run(args: argparse.Namespace, settings: ClientSettings) -> int:
    history = HistoryStore(args.history or settings.history_path)

    if args.clear:
        history.clear()
        if not args.message:
            return 0

    if not args.message:
        sys.stderr.write("error: a message is required\n")
        return 2

    context = args.context_file.read_text(encoding="utf-8") if args.context_file else None

    async with httpx.AsyncClient() as client:
        consumer = ChatStreamConsumer(
            client,
            history,
            settings,
            on_content=_write_delta,
            on_status=_write_status,
        )
        result = await consumer.send(args.message, context=context)

    if result.text:
        sys.stdout.write("\n")
    if result.error:
        sys.stderr.write(f"error: {result.error}\n")
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(json_format=False)

    settings = ClientSettings()
    if args.url:
        settings = settings.model_copy(update={"relay_url": args.url})

    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
