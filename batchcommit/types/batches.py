"""Batch and site data models, and the batch state machine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from batchcommit.exceptions import IllegalTransitionError


class BatchState(str, Enum):
    """Lifecycle state of a change batch."""

    OPEN = "open"
    COMMITTING = "committing"
    COMPLETE = "complete"
    FAILED = "failed"


# (source, target) -> performed by the orchestrator itself
_TRANSITION_TABLE: dict[tuple[BatchState, BatchState], bool] = {
    (BatchState.OPEN, BatchState.COMMITTING): True,
    (BatchState.COMMITTING, BatchState.COMPLETE): True,
    (BatchState.COMMITTING, BatchState.FAILED): True,
    # dry run releases the claim
    (BatchState.COMMITTING, BatchState.OPEN): True,
    # explicit external retry only
    (BatchState.FAILED, BatchState.OPEN): False,
}


@dataclass(frozen=True)
class Transition:
    """A legal edge of the batch state machine.

    Construction fails with IllegalTransitionError for any pair that is not
    in the transition table, so an illegal move can never reach the store.
    """

    source: BatchState
    target: BatchState

    def __post_init__(self) -> None:
        source = BatchState(self.source)
        target = BatchState(self.target)
        if (source, target) not in _TRANSITION_TABLE:
            raise IllegalTransitionError(source.value, target.value)
        object.__setattr__(self, "source", source)
        object.__setattr__(self, "target", target)

    @property
    def internal(self) -> bool:
        """True if the orchestrator may perform this transition itself."""
        return _TRANSITION_TABLE[(self.source, self.target)]

    def __str__(self) -> str:
        return f"{self.source.value}->{self.target.value}"


def legal_transitions() -> list[Transition]:
    """Return every edge in the transition table."""
    return [Transition(source, target) for source, target in _TRANSITION_TABLE]


CLAIM = Transition(BatchState.OPEN, BatchState.COMMITTING)
COMPLETE = Transition(BatchState.COMMITTING, BatchState.COMPLETE)
FAIL = Transition(BatchState.COMMITTING, BatchState.FAILED)
RELEASE = Transition(BatchState.COMMITTING, BatchState.OPEN)
REOPEN = Transition(BatchState.FAILED, BatchState.OPEN)


@dataclass
class Site:
    """A tracked repository workspace. Read-only to the commit core."""

    site_id: str
    repo_full_name: str  # "owner/repo"
    default_branch: str
    installation_id: int
    app_slug: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def token_expiry_hint(self) -> str | None:
        """Most recently observed installation token expiry (observability only)."""
        return self.settings.get("latestInstallationTokenExpiry")


@dataclass
class ChangeBatch:
    """The unit of atomic publication."""

    batch_id: str
    site_id: str
    state: BatchState
    commit_sha: str | None
    commit_message: str | None
    metadata: dict[str, Any]
    site: Site
