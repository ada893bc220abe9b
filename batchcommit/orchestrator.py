"""
Batch commit orchestrator.

Sequences credential minting, asset resolution and the tree/commit builder
under the batch state machine::

    open -> committing -> complete
                       -> failed
                       -> open      (dry run only)

Each invocation is stateless. Concurrent requests for the same batch are
serialized solely by the store's compare-and-swap on the state column.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from batchcommit.assets import AssetResolver
from batchcommit.builder import (
    DEFAULT_BLOB_CONCURRENCY,
    CommitBuilder,
    GitDataAPI,
    default_commit_message,
)
from batchcommit.credentials import CredentialBroker
from batchcommit.exceptions import (
    BatchCommitError,
    ConcurrentUpdateError,
    ConflictError,
    InternalError,
    RequestTimeoutError,
)
from batchcommit.logging import get_logger
from batchcommit.store import BatchStore, utc_now_iso
from batchcommit.types.assets import AssetStatus, StagedFile
from batchcommit.types.batches import BatchState, ChangeBatch, Site
from batchcommit.types.errors import detail_from_exception, failure_metadata
from batchcommit.types.git import CommitIdentity, CommitResult
from batchcommit.types.installations import InstallationToken

logger = get_logger("orchestrator")


class GitHost(Protocol):
    """Factory for per-repository Git data clients (GitHostClient or a fake)."""

    def git(self, repo_full_name: str, token: str) -> GitDataAPI: ...


@dataclass
class OrchestratorConfig:
    """Tunables for one orchestrator."""

    max_attempts: int = 3
    attempt_timeout: float = 120.0
    blob_concurrency: int = DEFAULT_BLOB_CONCURRENCY
    identity: CommitIdentity = field(default_factory=CommitIdentity)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.attempt_timeout <= 0:
            raise ValueError(f"attempt_timeout must be positive, got {self.attempt_timeout}")


@dataclass
class CommitOutcome:
    """What a commit request achieved."""

    batch_id: str
    dry_run: bool = False
    commit_sha: str | None = None
    result: CommitResult | None = None


class BatchCommitOrchestrator:
    """
    Entry point for "publish this batch as one commit".

    Example:
        ```python
        orchestrator = BatchCommitOrchestrator(store, resolver, broker, host)
        outcome = await orchestrator.commit(batch_id)
        print(outcome.commit_sha)
        ```
    """

    def __init__(
        self,
        store: BatchStore,
        resolver: AssetResolver,
        broker: CredentialBroker,
        host: GitHost,
        config: OrchestratorConfig | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            store: Batch state store adapter
            resolver: Asset resolver over the same store and a blob store
            broker: Credential broker
            host: Remote host client used to reach the repository's Git data
            config: Retry bound, timeouts, fan-out and bot identity
        """
        self.store = store
        self.resolver = resolver
        self.broker = broker
        self.host = host
        self.config = config or OrchestratorConfig()

    async def commit(self, batch_id: str, dry_run: bool = False) -> CommitOutcome:
        """
        Publish a batch.

        Args:
            batch_id: Batch to commit
            dry_run: Validate credentials only, then return the batch to open

        Returns:
            CommitOutcome with the resulting commit SHA (None for dry runs)

        Raises:
            NotFoundError: If the batch does not exist
            ConflictError: If the batch is not open or the claim was lost;
                nothing was changed
            BatchCommitError: Any failure after the claim. The batch has been
                moved to failed with the failure detail in its metadata
                (best effort) before the error is re-raised.
        """
        batch = await self.store.load(batch_id)

        if batch.state is not BatchState.OPEN:
            raise ConflictError(
                "BATCH_NOT_OPEN",
                f"Batch is not open (current state: {batch.state.value})",
                current_state=batch.state.value,
            )

        claimed = await self.store.transition(
            batch_id,
            BatchState.OPEN,
            BatchState.COMMITTING,
            {"commitStartedAt": utc_now_iso(), "dryRun": dry_run},
        )
        if not claimed:
            raise ConflictError(
                "BATCH_NOT_OPEN",
                "Batch is not open (claimed by another commit request)",
            )
        logger.info("Batch %s claimed for %s", batch_id, "dry run" if dry_run else "commit")

        assets_claimed = False
        try:
            await self.broker.verify_installation(batch.site.installation_id)
            token = await self.broker.mint(batch.site.installation_id)
            await self._record_token_expiry(batch.site, token)

            if dry_run:
                await self._release(batch_id)
                return CommitOutcome(batch_id=batch_id, dry_run=True)

            assets_claimed = await self.store.update_asset_status(
                batch_id, AssetStatus.STAGED, AssetStatus.COMMITTING
            ) > 0
            assets = await self.resolver.list_staged(batch_id, AssetStatus.COMMITTING)
            files = await self.resolver.resolve(assets)

            message = batch.commit_message or default_commit_message(batch_id, len(files))
            git = self.host.git(batch.site.repo_full_name, token.token)
            result = await self._build_with_retry(git, batch.site.default_branch, files, message)
        except Exception as exc:
            await self._record_failure(batch_id, exc, assets_claimed)
            raise

        return await self._complete(batch, result)

    async def _release(self, batch_id: str) -> None:
        released = await self.store.transition(
            batch_id,
            BatchState.COMMITTING,
            BatchState.OPEN,
            {"lastDryRunAt": utc_now_iso()},
        )
        if not released:
            raise InternalError(
                "DRY_RUN_RELEASE_FAILED",
                "Batch left the committing state during a dry run",
            )
        logger.info("Batch %s dry run acknowledged; batch is open again", batch_id)

    async def _build_with_retry(
        self,
        git: GitDataAPI,
        branch: str,
        files: Sequence[StagedFile],
        message: str,
    ) -> CommitResult:
        builder = CommitBuilder(git, self.config.identity, self.config.blob_concurrency)
        last_error: BatchCommitError | None = None

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                result = await asyncio.wait_for(
                    builder.build(branch, files, message),
                    timeout=self.config.attempt_timeout,
                )
            except ConcurrentUpdateError as e:
                last_error = e
                logger.warning(
                    "Attempt %d/%d: %s moved to %s; rebuilding on the new head",
                    attempt,
                    self.config.max_attempts,
                    branch,
                    e.actual_sha or "an unknown commit",
                )
            except asyncio.TimeoutError:
                last_error = RequestTimeoutError(
                    "TIMEOUT",
                    f"Commit attempt {attempt} exceeded {self.config.attempt_timeout}s",
                )
                last_error.details["operation"] = "build_commit"
                logger.warning("Attempt %d/%d timed out; abandoning it", attempt, self.config.max_attempts)
            except RequestTimeoutError as e:
                last_error = e
                logger.warning(
                    "Attempt %d/%d: host request timed out (%s); abandoning it",
                    attempt,
                    self.config.max_attempts,
                    e.message,
                )
            else:
                result.attempts = attempt
                return result

        if isinstance(last_error, ConcurrentUpdateError):
            raise ConcurrentUpdateError(
                f"Branch {branch} kept moving; gave up after {self.config.max_attempts} attempts",
                branch=branch,
                expected_sha=last_error.expected_sha,
                actual_sha=last_error.actual_sha,
                attempts=self.config.max_attempts,
            ) from last_error
        raise last_error  # type: ignore[misc]

    async def _complete(self, batch: ChangeBatch, result: CommitResult) -> CommitOutcome:
        batch_id = batch.batch_id
        try:
            completed = await self.store.transition(
                batch_id,
                BatchState.COMMITTING,
                BatchState.COMPLETE,
                {
                    "completedAt": utc_now_iso(),
                    "attempts": result.attempts,
                    "pathsChanged": len(result.paths_changed),
                },
                commit_sha=result.commit_sha,
            )
        except BatchCommitError as e:
            completed = False
            logger.error("Batch %s: completion write failed: %s", batch_id, e)

        if not completed:
            error = InternalError(
                "RECONCILIATION_REQUIRED",
                f"Commit {result.commit_sha} landed on {result.branch} but batch "
                f"{batch_id} could not be marked complete",
                commit_sha=result.commit_sha,
            )
            logger.error("Batch %s needs manual reconciliation: %s", batch_id, error.message)
            await self._record_failure(batch_id, error, assets_claimed=False)
            raise error

        logger.info("Batch %s complete at %s", batch_id, result.commit_sha)

        try:
            await self.store.update_asset_status(batch_id, AssetStatus.COMMITTING, AssetStatus.COMMITTED)
        except BatchCommitError as e:
            logger.error("Batch %s complete but its assets could not be marked committed: %s", batch_id, e)
            raise InternalError(
                "ASSET_BOOKKEEPING_FAILED",
                f"Batch {batch_id} is complete but its assets are still marked committing",
                commit_sha=result.commit_sha,
            ) from e

        return CommitOutcome(batch_id=batch_id, commit_sha=result.commit_sha, result=result)

    async def _record_failure(self, batch_id: str, error: BaseException, assets_claimed: bool) -> None:
        """Best effort ``committing -> failed``; never masks ``error``."""
        logger.error("Batch %s failed: %s", batch_id, error, exc_info=error)
        detail = detail_from_exception(error)

        try:
            recorded = await self.store.transition(
                batch_id,
                BatchState.COMMITTING,
                BatchState.FAILED,
                failure_metadata(detail),
            )
            if not recorded:
                logger.error("Batch %s: failure not recorded, state already moved", batch_id)
                return
            if assets_claimed:
                await self.store.update_asset_status(batch_id, AssetStatus.COMMITTING, AssetStatus.FAILED)
        except Exception:
            logger.exception("Batch %s: failed to record failure detail", batch_id)

    async def _record_token_expiry(self, site: Site, token: InstallationToken) -> None:
        try:
            await self.store.update_site(
                site.site_id,
                settings_patch={"latestInstallationTokenExpiry": token.expires_at_iso},
            )
        except BatchCommitError as e:
            logger.warning("Could not cache token expiry on site %s: %s", site.site_id, e)
