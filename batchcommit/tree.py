"""
Tree planning for batch commits.

Pure functions that turn a head tree plus staged (path, blob SHA) pairs into
the minimal set of tree entries to layer over the head tree. The merge is
non-destructive: paths that are not staged keep their head content.
"""

import hashlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from batchcommit.exceptions import AssetIntegrityError
from batchcommit.types.git import TreeEntry

FILE_MODE = "100644"
EXECUTABLE_MODE = "100755"
TREE_MODE = "040000"

_FORBIDDEN_SEGMENTS = {"", ".", "..", ".git"}


def git_blob_sha(content: bytes) -> str:
    """Compute the Git object id of a blob: sha1("blob <len>\\0" + content)."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


def normalize_repo_path(path: str) -> str:
    """
    Normalize a destination path to the form used in tree entries.

    Leading slashes are stripped. Empty, ``.``, ``..`` and ``.git`` segments
    and backslashes are rejected.

    Raises:
        AssetIntegrityError: If the path cannot be placed in a tree
    """
    candidate = path.lstrip("/")
    segments = candidate.split("/")
    if "\\" in candidate or "\0" in candidate or any(s in _FORBIDDEN_SEGMENTS for s in segments):
        raise AssetIntegrityError(
            "INVALID_PATH",
            f"Destination path {path!r} is not a valid repository path",
            repo_path=path,
        )
    return candidate


def parent_directories(path: str) -> list[str]:
    """Return every ancestor directory of ``path``, shallowest first."""
    segments = path.split("/")[:-1]
    return ["/".join(segments[: i + 1]) for i in range(len(segments))]


@dataclass
class TreePlan:
    """Entries to layer over the base tree, plus what the layering implies."""

    updates: list[TreeEntry] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    new_directories: list[str] = field(default_factory=list)

    @property
    def changed_paths(self) -> list[str]:
        return [entry.path for entry in self.updates]

    @property
    def is_empty(self) -> bool:
        return not self.updates


def plan_tree_update(
    head_entries: Iterable[TreeEntry],
    staged: Sequence[tuple[str, str]],
) -> TreePlan:
    """
    Plan the tree entries that replace or add exactly the staged paths.

    Args:
        head_entries: Recursive listing of the head tree
        staged: (normalized repository path, blob SHA) pairs

    Returns:
        TreePlan with the entries to send alongside ``base_tree``

    Raises:
        AssetIntegrityError: On duplicate destinations, or when a staged file
            would replace a directory or need a file to become a directory
    """
    files: dict[str, TreeEntry] = {}
    directories: set[str] = set()
    for entry in head_entries:
        if entry.type == "tree":
            directories.add(entry.path)
        else:
            files[entry.path] = entry
            # Listings may omit tree entries; derive them from file paths
            directories.update(parent_directories(entry.path))

    plan = TreePlan()
    seen: set[str] = set()
    created_dirs: set[str] = set()

    for path, sha in staged:
        if path in seen:
            raise AssetIntegrityError(
                "DUPLICATE_PATH",
                f"More than one staged asset targets {path}",
                repo_path=path,
            )
        seen.add(path)

        if path in directories:
            raise AssetIntegrityError(
                "PATH_CONFLICT",
                f"{path} is a directory in the branch head",
                repo_path=path,
            )

        for directory in parent_directories(path):
            if directory in files or directory in seen:
                raise AssetIntegrityError(
                    "PATH_CONFLICT",
                    f"{path} needs {directory} to be a directory, but it is a file",
                    repo_path=path,
                )
            if directory not in directories and directory not in created_dirs:
                created_dirs.add(directory)
                plan.new_directories.append(directory)

        existing = files.get(path)
        if existing is not None and existing.sha == sha and existing.type == "blob":
            plan.unchanged.append(path)
            continue

        mode = existing.mode if existing is not None and existing.mode in (FILE_MODE, EXECUTABLE_MODE) else FILE_MODE
        plan.updates.append(TreeEntry(path=path, mode=mode, type="blob", sha=sha))

    # A later staged file may have claimed an earlier one's path as a directory
    for path in seen:
        if path in created_dirs:
            raise AssetIntegrityError(
                "PATH_CONFLICT",
                f"{path} is staged both as a file and as a directory",
                repo_path=path,
            )

    return plan


def apply_tree_update(files: dict[str, str], updates: Iterable[TreeEntry]) -> dict[str, str]:
    """
    Layer blob entries over a flat {path: blob SHA} map.

    This is the host-side meaning of ``create_tree(updates, base_tree)``:
    every path not in ``updates`` is carried over untouched.
    """
    merged = dict(files)
    for entry in updates:
        if entry.sha is None:
            merged.pop(entry.path, None)
        else:
            merged[entry.path] = entry.sha
    return merged


def directories_of(paths: Iterable[str]) -> list[str]:
    """Synthesize the directory entries implied by a set of file paths."""
    found: set[str] = set()
    for path in paths:
        found.update(parent_directories(path))
    return sorted(found)
