"""Git data (low-level object) resource client.

Scoped to a single repository and authenticated with an installation token.
"""

import base64
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from batchcommit.types.git import CommitIdentity, GitCommit, GitRef, GitTree, TreeEntry

if TYPE_CHECKING:
    from batchcommit.transport import HTTPTransport


def _parse_tree(data: dict[str, Any]) -> GitTree:
    return GitTree(
        sha=data["sha"],
        entries=[
            TreeEntry(
                path=entry["path"],
                mode=entry["mode"],
                type=entry["type"],
                sha=entry.get("sha"),
            )
            for entry in data.get("tree", [])
        ],
        truncated=bool(data.get("truncated", False)),
    )


def _parse_commit(data: dict[str, Any]) -> GitCommit:
    return GitCommit(
        sha=data["sha"],
        tree_sha=data["tree"]["sha"],
        parents=[parent["sha"] for parent in data.get("parents", [])],
        message=data.get("message", ""),
    )


class GitDataClient:
    """Client for ref/commit/tree/blob operations on one repository."""

    def __init__(self, transport: "HTTPTransport", repo_full_name: str, token: str) -> None:
        """
        Initialize the Git data client.

        Args:
            transport: HTTP transport for the Git host API
            repo_full_name: Repository as "owner/repo"
            token: Installation access token
        """
        owner, _, name = repo_full_name.partition("/")
        if not owner or not name:
            raise ValueError(f"Repository must be 'owner/repo', got {repo_full_name!r}")
        self.transport = transport
        self.repo_full_name = repo_full_name
        self._token = token
        self._prefix = f"/repos/{quote(owner, safe='')}/{quote(name, safe='')}/git"

    async def get_ref(self, branch: str) -> GitRef:
        """
        Get the head of a branch.

        Raises:
            ResourceNotFoundError: If the branch does not exist
        """
        data = await self.transport.request_json(
            "GET",
            f"{self._prefix}/ref/heads/{quote(branch, safe='/')}",
            token=self._token,
        )
        return GitRef(name=data["ref"].removeprefix("refs/"), sha=data["object"]["sha"])

    async def get_commit(self, sha: str) -> GitCommit:
        """Get a commit object."""
        data = await self.transport.request_json(
            "GET", f"{self._prefix}/commits/{sha}", token=self._token
        )
        return _parse_commit(data)

    async def get_tree(self, sha: str, recursive: bool = True) -> GitTree:
        """Get a tree, recursively listed by default."""
        params = {"recursive": "1"} if recursive else None
        data = await self.transport.request_json(
            "GET", f"{self._prefix}/trees/{sha}", token=self._token, params=params
        )
        return _parse_tree(data)

    async def create_blob(self, content: bytes) -> str:
        """
        Create a blob. Creating content that already exists is a no-op success.

        Returns:
            The blob SHA as computed by the host
        """
        data = await self.transport.request_json(
            "POST",
            f"{self._prefix}/blobs",
            token=self._token,
            json={"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"},
        )
        return data["sha"]

    async def create_tree(self, entries: list[TreeEntry], base_tree: str | None = None) -> str:
        """
        Create a tree from ``entries`` layered over ``base_tree``.

        Paths not mentioned in ``entries`` keep their base tree content; the
        host synthesizes any intermediate directories.

        Returns:
            The new tree SHA
        """
        body: dict[str, Any] = {
            "tree": [
                {"path": entry.path, "mode": entry.mode, "type": entry.type, "sha": entry.sha}
                for entry in entries
            ]
        }
        if base_tree:
            body["base_tree"] = base_tree

        data = await self.transport.request_json(
            "POST", f"{self._prefix}/trees", token=self._token, json=body
        )
        return data["sha"]

    async def create_commit(
        self,
        message: str,
        tree_sha: str,
        parents: list[str],
        author: CommitIdentity | None = None,
        committer: CommitIdentity | None = None,
    ) -> GitCommit:
        """Create a commit object."""
        body: dict[str, Any] = {"message": message, "tree": tree_sha, "parents": parents}
        if author is not None:
            body["author"] = author.to_dict()
        if committer is not None:
            body["committer"] = committer.to_dict()

        data = await self.transport.request_json(
            "POST", f"{self._prefix}/commits", token=self._token, json=body
        )
        return _parse_commit(data)

    async def update_ref(self, branch: str, sha: str, force: bool = False) -> GitRef:
        """
        Move a branch to ``sha``.

        With ``force=False`` the host only accepts fast-forward updates and
        answers 422 otherwise. Never retried automatically.
        """
        data = await self.transport.request_json(
            "PATCH",
            f"{self._prefix}/refs/heads/{quote(branch, safe='/')}",
            token=self._token,
            json={"sha": sha, "force": force},
            retry=False,
        )
        return GitRef(name=data["ref"].removeprefix("refs/"), sha=data["object"]["sha"])
