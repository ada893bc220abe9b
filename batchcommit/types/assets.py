"""Staged asset data models."""

from dataclasses import dataclass
from enum import Enum


class AssetStatus(str, Enum):
    """Lifecycle status of a staged asset version."""

    PENDING = "pending"
    STAGED = "staged"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class AssetVersion:
    """One staged file belonging to a batch."""

    asset_id: str
    site_id: str
    storage_path: str
    repo_path: str
    file_size_bytes: int
    checksum: str | None
    status: AssetStatus
    batch_id: str | None


@dataclass(frozen=True)
class StagedFile:
    """Resolved content ready to be written at a repository path."""

    repo_path: str
    content: bytes
    asset_id: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)
