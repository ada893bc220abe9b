"""
Pytest fixtures for batchcommit testing.

Provides an in-memory environment (fake host, stores, broker, orchestrator)
plus helpers that seed sites, batches and staged assets.
"""

import hashlib
import uuid
from collections.abc import Generator
from dataclasses import dataclass

import pytest

from batchcommit.assets import AssetResolver
from batchcommit.credentials import CredentialBroker
from batchcommit.orchestrator import BatchCommitOrchestrator, OrchestratorConfig
from batchcommit.signers import AppKeySigner
from batchcommit.testing.fakes import FakeGitHost, InMemoryBatchStore, InMemoryBlobStore
from batchcommit.types.assets import AssetStatus, AssetVersion
from batchcommit.types.batches import BatchState, Site

TEST_APP_ID = "12345"
TEST_INSTALLATION_ID = 424242
TEST_REPO = "acme/site"


# ============================================================================
# Helper Functions
# ============================================================================


def create_site(
    store: InMemoryBatchStore,
    site_id: str = "site-1",
    repo_full_name: str = TEST_REPO,
    default_branch: str = "main",
    installation_id: int = TEST_INSTALLATION_ID,
) -> Site:
    """Add a site row to ``store``."""
    return store.add_site(
        Site(
            site_id=site_id,
            repo_full_name=repo_full_name,
            default_branch=default_branch,
            installation_id=installation_id,
            app_slug="batchcommit",
        )
    )


def stage_batch(
    store: InMemoryBatchStore,
    blobs: InMemoryBlobStore,
    files: dict[str, bytes],
    site_id: str = "site-1",
    batch_id: str | None = None,
    state: BatchState = BatchState.OPEN,
    commit_message: str | None = None,
    with_checksums: bool = True,
) -> str:
    """
    Add a batch whose staged assets hold ``files``; return the batch id.

    Example:
        ```python
        batch_id = stage_batch(store, blobs, {"index.html": b"<h1>hi</h1>"})
        outcome = await orchestrator.commit(batch_id)
        ```
    """
    batch_id = batch_id or str(uuid.uuid4())
    store.add_batch(batch_id, site_id, state=state, commit_message=commit_message)

    for repo_path, content in files.items():
        asset_id = str(uuid.uuid4())
        storage_path = f"{site_id}/{batch_id}/{asset_id}"
        blobs.put(storage_path, content)
        store.add_asset(
            AssetVersion(
                asset_id=asset_id,
                site_id=site_id,
                storage_path=storage_path,
                repo_path=repo_path,
                file_size_bytes=len(content),
                checksum=hashlib.sha256(content).hexdigest() if with_checksums else None,
                status=AssetStatus.STAGED,
                batch_id=batch_id,
            )
        )
    return batch_id


@dataclass
class CommitEnvironment:
    """Everything an orchestrator test touches, wired together."""

    signer: AppKeySigner
    host: FakeGitHost
    store: InMemoryBatchStore
    blobs: InMemoryBlobStore
    broker: CredentialBroker
    orchestrator: BatchCommitOrchestrator
    site: Site

    def stage(self, files: dict[str, bytes], **kwargs) -> str:
        return stage_batch(self.store, self.blobs, files, site_id=self.site.site_id, **kwargs)

    def head_files(self) -> dict[str, bytes]:
        return self.host.files_at(self.host.head(self.site.repo_full_name, self.site.default_branch).sha)


def create_environment(
    signer: AppKeySigner,
    initial_files: dict[str, bytes] | None = None,
    config: OrchestratorConfig | None = None,
) -> CommitEnvironment:
    """Build a fully wired in-memory environment with one site and repository."""
    host = FakeGitHost(app_id=TEST_APP_ID, public_key_pem=signer.public_key_pem())
    host.apps.add_installation(TEST_INSTALLATION_ID)
    host.create_repo(TEST_REPO, files=initial_files or {"README.md": b"# site\n"})

    store = InMemoryBatchStore()
    blobs = InMemoryBlobStore()
    site = create_site(store)
    broker = CredentialBroker(TEST_APP_ID, signer, host.apps)
    orchestrator = BatchCommitOrchestrator(
        store,
        AssetResolver(store, blobs),
        broker,
        host,
        config or OrchestratorConfig(),
    )
    return CommitEnvironment(
        signer=signer,
        host=host,
        store=store,
        blobs=blobs,
        broker=broker,
        orchestrator=orchestrator,
        site=site,
    )


# ============================================================================
# Signer Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def app_signer() -> AppKeySigner:
    """
    Provide a generated 2048-bit application signer.

    Generated once per session; RSA key generation is slow.
    """
    return AppKeySigner.generate()


# ============================================================================
# In-memory Collaborator Fixtures
# ============================================================================


@pytest.fixture
def fake_host(app_signer: AppKeySigner) -> Generator[FakeGitHost, None, None]:
    """
    Provide a FakeGitHost with one installation and one repository.

    Example:
        ```python
        def test_my_feature(fake_host):
            ...
            assert fake_host.call_count("git.update_ref") == 1
        ```
    """
    host = FakeGitHost(app_id=TEST_APP_ID, public_key_pem=app_signer.public_key_pem())
    host.apps.add_installation(TEST_INSTALLATION_ID)
    host.create_repo(TEST_REPO, files={"README.md": b"# site\n"})
    yield host
    host.reset_calls()


@pytest.fixture
def batch_store() -> InMemoryBatchStore:
    """Provide an empty InMemoryBatchStore."""
    return InMemoryBatchStore()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    """Provide an empty InMemoryBlobStore."""
    return InMemoryBlobStore()


@pytest.fixture
def commit_env(app_signer: AppKeySigner) -> CommitEnvironment:
    """
    Provide a wired in-memory environment.

    Example:
        ```python
        @pytest.mark.asyncio
        async def test_publish(commit_env):
            batch_id = commit_env.stage({"a.txt": b"a"})
            outcome = await commit_env.orchestrator.commit(batch_id)
            assert commit_env.head_files()["a.txt"] == b"a"
        ```
    """
    return create_environment(app_signer)
