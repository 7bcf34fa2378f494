"""Pytest session setup for backend test runs.

This file sits at the backend/ directory root so pytest loads it before any
test module imports the application.
"""
import os

import pytest

os.environ.setdefault("APP_ENV", "test")


@pytest.fixture(scope="session")
def anyio_backend():
    # Session scope so the session-scoped async engine fixture can use it
    return "asyncio"
