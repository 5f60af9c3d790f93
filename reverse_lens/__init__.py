# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Reverse image search service with SSRF-safe admission and result caching."""

__version__ = "0.1.0"
