"""Git object models returned by the remote host's Git data API."""

from dataclasses import dataclass, field


@dataclass
class GitRef:
    """A branch reference."""

    name: str  # "heads/main"
    sha: str


@dataclass
class GitCommit:
    """A commit object."""

    sha: str
    tree_sha: str
    parents: list[str]
    message: str = ""


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a (recursively listed) tree."""

    path: str
    mode: str  # "100644", "100755", "040000", "120000", "160000"
    type: str  # "blob", "tree", "commit"
    sha: str | None


@dataclass
class GitTree:
    """A recursively listed tree."""

    sha: str
    entries: list[TreeEntry]
    truncated: bool = False


@dataclass(frozen=True)
class CommitIdentity:
    """Author/committer identity used for batch commits."""

    name: str = "batchcommit[bot]"
    email: str = "batchcommit[bot]@users.noreply.github.com"

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email}


@dataclass
class CommitResult:
    """Outcome of one successful build-and-push."""

    commit_sha: str
    tree_sha: str
    parent_sha: str
    branch: str
    paths_changed: list[str] = field(default_factory=list)
    blobs_created: int = 0
    created: bool = True  # False when the staged content matched the head tree
    attempts: int = 1
