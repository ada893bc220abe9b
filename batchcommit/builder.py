"""
Tree/commit builder.

Turns a flat list of (repository path, bytes) into one new commit on top of
a branch's current head, without touching unrelated files:

1. Resolve the head commit and its root tree
2. Create blobs for the staged content (bounded concurrency)
3. Layer exactly the staged paths over the head tree
4. Create a commit whose single parent is the head
5. Fast-forward the branch, conditioned on it still pointing at the head

The host calls are not atomic as a sequence, but the whole sequence is safe
to re-run: blobs are content addressed and tree/commit objects are immutable,
so an abandoned attempt only leaves unreferenced objects behind.
"""

import asyncio
from collections.abc import Sequence
from typing import Protocol

from batchcommit.exceptions import (
    AssetIntegrityError,
    ConcurrentUpdateError,
    ResourceConflictError,
    UnprocessableError,
)
from batchcommit.logging import get_logger
from batchcommit.tree import git_blob_sha, normalize_repo_path, plan_tree_update
from batchcommit.types.assets import StagedFile
from batchcommit.types.git import (
    CommitIdentity,
    CommitResult,
    GitCommit,
    GitRef,
    GitTree,
    TreeEntry,
)

logger = get_logger("builder")

DEFAULT_BLOB_CONCURRENCY = 4
MAX_BLOB_CONCURRENCY = 8


class GitDataAPI(Protocol):
    """The Git data operations the builder needs from the host."""

    async def get_ref(self, branch: str) -> GitRef: ...

    async def get_commit(self, sha: str) -> GitCommit: ...

    async def get_tree(self, sha: str, recursive: bool = True) -> GitTree: ...

    async def create_blob(self, content: bytes) -> str: ...

    async def create_tree(self, entries: list[TreeEntry], base_tree: str | None = None) -> str: ...

    async def create_commit(
        self,
        message: str,
        tree_sha: str,
        parents: list[str],
        author: CommitIdentity | None = None,
        committer: CommitIdentity | None = None,
    ) -> GitCommit: ...

    async def update_ref(self, branch: str, sha: str, force: bool = False) -> GitRef: ...


def default_commit_message(batch_id: str, file_count: int) -> str:
    noun = "file" if file_count == 1 else "files"
    return f"Batch {batch_id} — {file_count} {noun}"


class CommitBuilder:
    """
    Builds and pushes a single commit for a set of staged files.

    One builder is used for every attempt of a batch: blobs created by an
    earlier attempt are remembered and not uploaded again.
    """

    def __init__(
        self,
        git: GitDataAPI,
        identity: CommitIdentity | None = None,
        max_concurrency: int = DEFAULT_BLOB_CONCURRENCY,
    ) -> None:
        """
        Initialize the builder.

        Args:
            git: Git data client for the target repository
            identity: Bot identity used as author and committer
            max_concurrency: Blob uploads in flight at once (1..8)
        """
        self.git = git
        self.identity = identity or CommitIdentity()
        self.max_concurrency = max(1, min(max_concurrency, MAX_BLOB_CONCURRENCY))
        self._known_blobs: set[str] = set()

    @property
    def known_blobs(self) -> frozenset[str]:
        """Blob SHAs this builder has created or confirmed on the host."""
        return frozenset(self._known_blobs)

    async def build(
        self,
        branch: str,
        files: Sequence[StagedFile],
        message: str,
    ) -> CommitResult:
        """
        Run steps 1-5 once.

        Args:
            branch: Branch to advance (e.g. "main")
            files: Staged files, already ordered by path
            message: Commit message

        Returns:
            CommitResult; ``created`` is False when nothing differed from head

        Raises:
            ConcurrentUpdateError: If the branch moved since it was read
            AssetIntegrityError: On invalid/conflicting paths or a blob hash
                mismatch
            APIError: On other host failures
        """
        staged = [(normalize_repo_path(f.repo_path), f) for f in files]

        # Step 1
        head_ref = await self.git.get_ref(branch)
        head = await self.git.get_commit(head_ref.sha)
        head_tree = await self.git.get_tree(head.tree_sha, recursive=True)
        if head_tree.truncated:
            logger.warning("Head tree of %s is truncated; unchanged detection is partial", branch)

        head_blobs = {entry.path: entry.sha for entry in head_tree.entries if entry.type == "blob"}

        # Step 2
        blob_shas, created = await self._create_blobs(staged, head_blobs)

        # Step 3
        plan = plan_tree_update(
            head_tree.entries,
            [(path, blob_shas[path]) for path, _ in staged],
        )
        if plan.is_empty:
            logger.info("Staged content matches %s@%s; nothing to commit", branch, head.sha[:7])
            return CommitResult(
                commit_sha=head.sha,
                tree_sha=head.tree_sha,
                parent_sha=head.sha,
                branch=branch,
                blobs_created=created,
                created=False,
            )

        tree_sha = await self.git.create_tree(plan.updates, base_tree=head.tree_sha)

        # Step 4
        commit = await self.git.create_commit(
            message,
            tree_sha,
            [head.sha],
            author=self.identity,
            committer=self.identity,
        )

        # Step 5
        await self._fast_forward(branch, head.sha, commit.sha)

        logger.info(
            "Advanced %s %s -> %s (%d paths, %d new dirs)",
            branch,
            head.sha[:7],
            commit.sha[:7],
            len(plan.updates),
            len(plan.new_directories),
        )
        return CommitResult(
            commit_sha=commit.sha,
            tree_sha=tree_sha,
            parent_sha=head.sha,
            branch=branch,
            paths_changed=plan.changed_paths,
            blobs_created=created,
        )

    async def _create_blobs(
        self,
        staged: list[tuple[str, StagedFile]],
        head_blobs: dict[str, str | None],
    ) -> tuple[dict[str, str], int]:
        """Create blobs for content not already on the host; return {path: sha}."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        shas: dict[str, str] = {}
        pending: dict[str, bytes] = {}

        for path, staged_file in staged:
            sha = git_blob_sha(staged_file.content)
            shas[path] = sha
            if head_blobs.get(path) == sha:
                self._known_blobs.add(sha)
            elif sha not in self._known_blobs:
                pending.setdefault(sha, staged_file.content)

        async def upload(expected: str, content: bytes) -> None:
            async with semaphore:
                actual = await self.git.create_blob(content)
            if actual != expected:
                raise AssetIntegrityError(
                    "BLOB_HASH_MISMATCH",
                    f"Host stored blob {actual} for content hashing to {expected}",
                )
            self._known_blobs.add(actual)

        # one failed upload cancels the rest
        tasks = [asyncio.ensure_future(upload(sha, content)) for sha, content in pending.items()]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return shas, len(pending)

    async def _fast_forward(self, branch: str, expected_sha: str, new_sha: str) -> None:
        current = await self.git.get_ref(branch)
        if current.sha != expected_sha:
            raise ConcurrentUpdateError(
                f"Branch {branch} moved while the commit was being built",
                branch=branch,
                expected_sha=expected_sha,
                actual_sha=current.sha,
            )

        try:
            await self.git.update_ref(branch, new_sha, force=False)
        except (UnprocessableError, ResourceConflictError) as e:
            raise ConcurrentUpdateError(
                f"Branch {branch} rejected a non fast-forward update: {e.message}",
                branch=branch,
                expected_sha=expected_sha,
            ) from e
