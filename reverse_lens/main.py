# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Run every configured reverse-lens MCP server in one process."""

import logging

import anyio

from reverse_lens.config import settings
from reverse_lens.servers import create_server

logger = logging.getLogger(__name__)


async def main() -> None:
    """Create each server from settings and serve them side by side.

    Raises:
        ValueError: If a server is configured with an unknown transport.
    """
    async with anyio.create_task_group() as tg:
        for key, cfg in settings.SERVERS.items():
            mcp = create_server(key)
            match cfg.transport:
                case "sse":
                    runner = mcp.run_sse_async
                case "streamable-http":
                    runner = mcp.run_streamable_http_async
                case _:
                    raise ValueError(f"Unknown transport for {key}: {cfg.transport}")
            logger.info("Starting %s on %s:%d (%s)", cfg.name, cfg.host, cfg.port, cfg.transport)
            tg.start_soon(runner)


def run() -> None:
    """Console entry point for the ``reverse-lens`` script."""
    logging.basicConfig(level=settings.LOG_LEVEL)
    anyio.run(main)


if __name__ == "__main__":
    run()
