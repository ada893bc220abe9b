"""
Pytest plugin for batchcommit testing fixtures.

This module re-exports all fixtures from fixtures.py so they can be
automatically discovered by pytest when this package is installed.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["batchcommit.testing.conftest"]

Or import the fixtures directly:

    from batchcommit.testing.fixtures import commit_env, fake_host
"""

# Re-export all fixtures for pytest auto-discovery
from batchcommit.testing.fixtures import (
    app_signer,
    batch_store,
    blob_store,
    commit_env,
    fake_host,
)

__all__ = [
    "app_signer",
    "fake_host",
    "batch_store",
    "blob_store",
    "commit_env",
]
