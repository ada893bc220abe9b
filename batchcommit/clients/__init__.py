"""batchcommit remote host resource clients."""

from batchcommit.clients.apps import AppsClient
from batchcommit.clients.git_data import GitDataClient

__all__ = [
    "AppsClient",
    "GitDataClient",
]
