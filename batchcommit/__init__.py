"""batchcommit - publish staged site assets as one commit on a GitHub branch."""

from batchcommit.assets import AssetResolver, BlobStore, SupabaseBlobStore
from batchcommit.builder import CommitBuilder
from batchcommit.client import GitHostClient
from batchcommit.config import Settings
from batchcommit.credentials import CredentialBroker
from batchcommit.exceptions import (
    APIError,
    AssetIntegrityError,
    BatchCommitError,
    ConcurrentUpdateError,
    ConfigurationError,
    ConflictError,
    CredentialError,
    IllegalTransitionError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from batchcommit.installations import InstallationSync, InstallationSyncRequest
from batchcommit.logging import configure_logging, get_logger
from batchcommit.orchestrator import BatchCommitOrchestrator, CommitOutcome, OrchestratorConfig
from batchcommit.signers import AppKeySigner
from batchcommit.signing import build_app_jwt
from batchcommit.store import BatchStore, PostgrestBatchStore
from batchcommit.transport import HTTPTransport, RetryConfig

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Orchestration
    "BatchCommitOrchestrator",
    "OrchestratorConfig",
    "CommitOutcome",
    "CommitBuilder",
    "InstallationSync",
    "InstallationSyncRequest",
    # Collaborators
    "GitHostClient",
    "CredentialBroker",
    "BatchStore",
    "PostgrestBatchStore",
    "BlobStore",
    "SupabaseBlobStore",
    "AssetResolver",
    # Signing
    "AppKeySigner",
    "build_app_jwt",
    # Exceptions
    "BatchCommitError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "IllegalTransitionError",
    "CredentialError",
    "AssetIntegrityError",
    "ConcurrentUpdateError",
    "InternalError",
    "ConfigurationError",
    "APIError",
    # Transport
    "HTTPTransport",
    "RetryConfig",
    # Config and logging
    "Settings",
    "configure_logging",
    "get_logger",
]
