# Copyright (c) 2026 Heureum AI. All rights reserved.

"""MCP server factory."""

from mcp.server.fastmcp import FastMCP

from reverse_lens.config import settings


def create_server(server_key: str) -> FastMCP:
    """Build the FastMCP server configured under ``server_key`` with its tools.

    Args:
        server_key (str): Key into ``settings.SERVERS``. Only "image" has tools.

    Returns:
        FastMCP: Server bound to the configured host and port.

    Raises:
        ValueError: If no server is configured under ``server_key`` or the key
            has no tool set.
    """
    cfg = settings.SERVERS.get(server_key)
    if cfg is None:
        raise ValueError(f"Unknown server: {server_key}")

    mcp = FastMCP(cfg.name, host=cfg.host, port=cfg.port)
    match server_key:
        case "image":
            from reverse_lens.tools.image import register_image_tools

            register_image_tools(mcp)
        case _:
            raise ValueError(f"No tools registered for server: {server_key}")
    return mcp
