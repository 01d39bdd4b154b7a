from __future__ import annotations

import asyncio
import logging

from client.config import CLIENT_CONFIG, load_config
from client.core import NetworkClient
from client.features import WatchReporter


async def run_client() -> None:
    load_config()
    logging.basicConfig(level=CLIENT_CONFIG["log_level"])
    network = NetworkClient()
    WatchReporter(network, strict=CLIENT_CONFIG["strict_types"])

    await network.connect()
    try:
        await network.run()
    finally:
        await network.close()


def main() -> None:
    asyncio.run(run_client())


if __name__ == "__main__":
    main()
