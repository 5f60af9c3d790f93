# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Image domain tools: reverse image search."""

from mcp.server.fastmcp import FastMCP

from reverse_lens.tools.image.search import register_image_search


def register_image_tools(mcp: FastMCP) -> None:
    """Register all image-domain tools with the MCP server.

    Args:
        mcp (FastMCP): The MCP server instance to register tools with.
    """
    register_image_search(mcp)
