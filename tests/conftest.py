# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared test configuration."""
import os

# Ensure test environment
os.environ.setdefault("DFS_LOGIN", "test-login")
os.environ.setdefault("DFS_PASSWORD", "test-password")
os.environ.setdefault("RATE_LIMIT_ENABLED", "True")
os.environ.setdefault("CACHE_ENABLED", "True")
os.environ.setdefault("SSRF_RESOLVE_DNS", "False")
