# Copyright (c) 2026 Heureum AI. All rights reserved.

"""MCP tool packages, one per server domain."""
