"""
tests/conftest.py — Shared pytest setup.

Structured logs from the test run go to a throwaway directory instead of
./logs.
"""

from __future__ import annotations

import os
import tempfile

os.environ.setdefault("STREAMGLOW_LOG_DIR", tempfile.mkdtemp(prefix="streamglow-test-logs-"))
