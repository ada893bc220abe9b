"""batchcommit testing utilities.

Provides in-memory fakes and fixtures for testing code that commits batches.
"""

from batchcommit.testing.fakes import (
    FakeGitHost,
    InMemoryBatchStore,
    InMemoryBlobStore,
    MockCall,
)
from batchcommit.testing.fixtures import (
    CommitEnvironment,
    create_environment,
    create_site,
    stage_batch,
)

__all__ = [
    # Fakes
    "FakeGitHost",
    "InMemoryBatchStore",
    "InMemoryBlobStore",
    "MockCall",
    # Helper functions
    "CommitEnvironment",
    "create_environment",
    "create_site",
    "stage_batch",
]
