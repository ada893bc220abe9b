"""batchcommit type definitions.

This module exports all data model types used by the commit core.
"""

from batchcommit.types.assets import AssetStatus, AssetVersion, StagedFile
from batchcommit.types.batches import (
    CLAIM,
    COMPLETE,
    FAIL,
    RELEASE,
    REOPEN,
    BatchState,
    ChangeBatch,
    Site,
    Transition,
    legal_transitions,
)
from batchcommit.types.errors import (
    AssetIntegrityDetail,
    ConcurrentUpdateDetail,
    CredentialDetail,
    ErrorDetail,
    InternalDetail,
    TimeoutDetail,
    detail_from_dict,
    detail_from_exception,
    detail_to_dict,
    failure_metadata,
)
from batchcommit.types.git import (
    CommitIdentity,
    CommitResult,
    GitCommit,
    GitRef,
    GitTree,
    TreeEntry,
)
from batchcommit.types.installations import Installation, InstallationToken

__all__ = [
    # Batches
    "BatchState",
    "ChangeBatch",
    "Site",
    "Transition",
    "legal_transitions",
    "CLAIM",
    "COMPLETE",
    "FAIL",
    "RELEASE",
    "REOPEN",
    # Assets
    "AssetStatus",
    "AssetVersion",
    "StagedFile",
    # Git objects
    "GitRef",
    "GitCommit",
    "GitTree",
    "TreeEntry",
    "CommitIdentity",
    "CommitResult",
    # Installations
    "Installation",
    "InstallationToken",
    # Error details
    "ErrorDetail",
    "CredentialDetail",
    "AssetIntegrityDetail",
    "ConcurrentUpdateDetail",
    "TimeoutDetail",
    "InternalDetail",
    "detail_from_exception",
    "detail_to_dict",
    "detail_from_dict",
    "failure_metadata",
]
