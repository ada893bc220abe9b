"""Tagged failure details recorded in a batch's metadata column.

Each variant serialises to a dict with a ``kind`` discriminator so the store's
flexible column stays queryable (``metadata->lastError->>kind``) while the core
works with typed values.
"""

import asyncio
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Union

from batchcommit.exceptions import (
    AssetIntegrityError,
    BatchCommitError,
    ConcurrentUpdateError,
    CredentialError,
    InternalError,
    RequestTimeoutError,
)


@dataclass(frozen=True)
class CredentialDetail:
    kind: ClassVar[str] = "credential"

    code: str
    message: str
    installation_id: int | None = None
    host_status: int | None = None
    host_message: str | None = None


@dataclass(frozen=True)
class AssetIntegrityDetail:
    kind: ClassVar[str] = "asset_integrity"

    code: str
    message: str
    storage_path: str | None = None
    repo_path: str | None = None


@dataclass(frozen=True)
class ConcurrentUpdateDetail:
    kind: ClassVar[str] = "concurrent_update"

    message: str
    branch: str
    expected_sha: str
    actual_sha: str | None = None
    attempts: int | None = None


@dataclass(frozen=True)
class TimeoutDetail:
    kind: ClassVar[str] = "timeout"

    message: str
    operation: str | None = None


@dataclass(frozen=True)
class InternalDetail:
    kind: ClassVar[str] = "internal"

    code: str
    message: str
    commit_sha: str | None = None
    reconciliation_required: bool = False


ErrorDetail = Union[
    CredentialDetail,
    AssetIntegrityDetail,
    ConcurrentUpdateDetail,
    TimeoutDetail,
    InternalDetail,
]

_VARIANTS: dict[str, type] = {
    cls.kind: cls
    for cls in (
        CredentialDetail,
        AssetIntegrityDetail,
        ConcurrentUpdateDetail,
        TimeoutDetail,
        InternalDetail,
    )
}


def _host_message(body: Any) -> str | None:
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        return str(message) if message is not None else None
    if body is None:
        return None
    return str(body)


def detail_from_exception(error: BaseException) -> ErrorDetail:
    """Map any failure raised during a commit onto its tagged detail."""
    if isinstance(error, CredentialError):
        return CredentialDetail(
            code=error.code,
            message=error.message,
            installation_id=error.installation_id,
            host_status=error.host_status,
            host_message=_host_message(error.host_body),
        )
    if isinstance(error, AssetIntegrityError):
        return AssetIntegrityDetail(
            code=error.code,
            message=error.message,
            storage_path=error.storage_path,
            repo_path=error.repo_path,
        )
    if isinstance(error, ConcurrentUpdateError):
        return ConcurrentUpdateDetail(
            message=error.message,
            branch=error.branch,
            expected_sha=error.expected_sha,
            actual_sha=error.actual_sha,
            attempts=error.attempts,
        )
    if isinstance(error, (RequestTimeoutError, TimeoutError, asyncio.TimeoutError)):
        message = error.message if isinstance(error, RequestTimeoutError) else "Operation timed out"
        operation = error.details.get("operation") if isinstance(error, RequestTimeoutError) else None
        return TimeoutDetail(message=message, operation=operation)
    if isinstance(error, InternalError):
        return InternalDetail(
            code=error.code,
            message=error.message,
            commit_sha=error.commit_sha,
            reconciliation_required=error.commit_sha is not None,
        )
    if isinstance(error, BatchCommitError):
        return InternalDetail(code=error.code, message=error.message)
    return InternalDetail(code="UNEXPECTED_ERROR", message=str(error) or type(error).__name__)


def detail_to_dict(detail: ErrorDetail) -> dict[str, Any]:
    """Serialise a detail for the metadata column."""
    return {"kind": detail.kind, **asdict(detail)}


def detail_from_dict(data: dict[str, Any]) -> ErrorDetail:
    """Rebuild a typed detail from the metadata column.

    Raises:
        ValueError: If the ``kind`` discriminator is unknown
    """
    kind = data.get("kind")
    cls = _VARIANTS.get(kind)  # type: ignore[arg-type]
    if cls is None:
        raise ValueError(f"Unknown error detail kind: {kind!r}")
    known = {f.name for f in fields(cls)}
    return cls(**{key: value for key, value in data.items() if key in known})


def failure_metadata(detail: ErrorDetail, at: datetime | None = None) -> dict[str, Any]:
    """Build the top-level metadata patch recorded on a failure transition."""
    at = at or datetime.now(timezone.utc)
    return {
        "lastError": detail_to_dict(detail),
        "failedAt": at.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }
