"""Pytest configuration and shared fixtures."""

import logging

import pytest

from taskmirror.core import db_client


logger = logging.getLogger(__name__)


@pytest.fixture(autouse=True)
def _no_shared_client():
    """Never let a test reach a real PocketBase server through the shared client."""
    db_client.set_client(None)
    yield
    db_client.set_client(None)
