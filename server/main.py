from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from server.config import SERVER_CONFIG, load_server_config
from server.core import BroadcastServer
from server.workers import ChangeRelay, FileWatcher


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Notify TCP subscribers whenever a file changes.")
    parser.add_argument("file", nargs="?", help="file to watch (default: SERVER_WATCH_FILE)")
    parser.add_argument("--host", help="bind address")
    parser.add_argument("--port", type=int, help="bind port")
    return parser.parse_args(argv)


async def run_server(argv: Optional[Sequence[str]] = None) -> None:
    load_server_config()
    args = parse_args(argv)
    logging.basicConfig(level=SERVER_CONFIG["log_level"])

    watch_file = args.file or SERVER_CONFIG["watch_file"]
    if not watch_file:
        raise SystemExit("No target filename was specified.")

    watcher = FileWatcher(watch_file, debounce_ms=SERVER_CONFIG["watch_debounce_ms"])
    server = BroadcastServer(
        args.host or SERVER_CONFIG["host"],
        args.port if args.port is not None else SERVER_CONFIG["port"],
        watch_file=watch_file,
        max_pending=SERVER_CONFIG["max_pending"],
        write_timeout=SERVER_CONFIG["write_timeout"],
    )
    relay = ChangeRelay(watcher, server)

    await server.start()
    relay.start()
    try:
        await relay.wait()
    finally:
        watcher.stop()
        await relay.stop()
        await server.stop()


def main() -> None:
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
