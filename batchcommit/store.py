"""
Batch state store adapter.

Reads and writes batch lifecycle state in the durable row store. The
compare-and-swap ``transition`` is the only concurrency control protecting
"at most one active commit per batch": it applies an update only while the
row still holds the expected state and reports a lost race as ``False``.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from batchcommit.exceptions import NotFoundError
from batchcommit.logging import get_logger
from batchcommit.transport import HTTPTransport
from batchcommit.types.assets import AssetStatus, AssetVersion
from batchcommit.types.batches import BatchState, ChangeBatch, Site, Transition

logger = get_logger("store")

_SITE_COLUMNS = "id,repo_full_name,default_branch,github_installation_id,github_app_slug,settings"
_BATCH_SELECT = f"id,site_id,state,commit_sha,commit_message,metadata,site:sites({_SITE_COLUMNS})"
_ASSET_SELECT = "id,site_id,storage_path,repo_path,file_size_bytes,checksum,status,batch_id"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def merge_metadata(current: dict[str, Any] | None, patch: dict[str, Any] | None) -> dict[str, Any]:
    """Merge ``patch`` into ``current`` at the top level only."""
    merged = dict(current or {})
    merged.update(patch or {})
    return merged


def parse_site(data: dict[str, Any]) -> Site:
    return Site(
        site_id=data["id"],
        repo_full_name=data["repo_full_name"],
        default_branch=data["default_branch"],
        installation_id=data["github_installation_id"],
        app_slug=data.get("github_app_slug"),
        settings=data.get("settings") or {},
    )


def parse_batch(data: dict[str, Any]) -> ChangeBatch:
    return ChangeBatch(
        batch_id=data["id"],
        site_id=data["site_id"],
        state=BatchState(data["state"]),
        commit_sha=data.get("commit_sha"),
        commit_message=data.get("commit_message"),
        metadata=data.get("metadata") or {},
        site=parse_site(data["site"]),
    )


def parse_asset(data: dict[str, Any]) -> AssetVersion:
    return AssetVersion(
        asset_id=data["id"],
        site_id=data["site_id"],
        storage_path=data["storage_path"],
        repo_path=data["repo_path"],
        file_size_bytes=int(data["file_size_bytes"]),
        checksum=data.get("checksum"),
        status=AssetStatus(data["status"]),
        batch_id=data.get("batch_id"),
    )


class BatchStore(ABC):
    """Abstract row-store adapter for batches, assets and sites."""

    @abstractmethod
    async def load(self, batch_id: str) -> ChangeBatch:
        """Load a batch with its site. Raises NotFoundError if absent."""
        pass

    @abstractmethod
    async def transition(
        self,
        batch_id: str,
        from_state: BatchState,
        to_state: BatchState,
        metadata_patch: dict[str, Any] | None = None,
        commit_sha: str | None = None,
    ) -> bool:
        """
        Compare-and-swap the batch state.

        Applies ``to_state`` (plus the top-level metadata merge and optional
        commit SHA) only if the row's state still equals ``from_state``.

        Returns:
            True if applied, False if another process already moved the state

        Raises:
            IllegalTransitionError: If the pair is not in the transition table
        """
        pass

    @abstractmethod
    async def list_assets(self, batch_id: str, status: AssetStatus) -> list[AssetVersion]:
        """List a batch's assets in ``status``, ordered by repository path."""
        pass

    @abstractmethod
    async def update_asset_status(
        self, batch_id: str, from_status: AssetStatus, to_status: AssetStatus
    ) -> int:
        """Move every asset of the batch in ``from_status`` to ``to_status``.

        Returns:
            Number of rows updated
        """
        pass

    @abstractmethod
    async def update_site(
        self,
        site_id: str,
        fields: dict[str, Any] | None = None,
        settings_patch: dict[str, Any] | None = None,
    ) -> None:
        """Update site columns and merge ``settings_patch`` into its settings."""
        pass


class PostgrestBatchStore(BatchStore):
    """
    Batch store backed by a PostgREST endpoint (e.g. Supabase ``/rest/v1``).

    The CAS is a conditional ``PATCH ... ?id=eq.<id>&state=eq.<from>`` that
    returns the updated rows: an empty result means the race was lost.
    """

    def __init__(self, transport: HTTPTransport, schema_path: str = "/rest/v1") -> None:
        """
        Initialize the store.

        Args:
            transport: Transport whose default headers carry the service credentials
            schema_path: Path prefix of the REST schema
        """
        self.transport = transport
        self._prefix = schema_path.rstrip("/")

    @classmethod
    def connect(
        cls,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        **transport_kwargs: Any,
    ) -> "PostgrestBatchStore":
        """Build a store for a Supabase project URL and service role key."""
        transport = HTTPTransport(
            base_url=url,
            headers={"apikey": service_key, "Authorization": f"Bearer {service_key}"},
            timeout=timeout,
            **transport_kwargs,
        )
        return cls(transport)

    async def close(self) -> None:
        await self.transport.close()

    async def load(self, batch_id: str) -> ChangeBatch:
        rows = await self.transport.request_json(
            "GET",
            f"{self._prefix}/change_batches",
            params={"id": f"eq.{batch_id}", "select": _BATCH_SELECT},
        )
        if not rows:
            raise NotFoundError("BATCH_NOT_FOUND", f"Batch {batch_id} not found")
        return parse_batch(rows[0])

    async def transition(
        self,
        batch_id: str,
        from_state: BatchState,
        to_state: BatchState,
        metadata_patch: dict[str, Any] | None = None,
        commit_sha: str | None = None,
    ) -> bool:
        edge = Transition(from_state, to_state)

        payload: dict[str, Any] = {"state": edge.target.value, "updated_at": utc_now_iso()}
        if commit_sha is not None:
            payload["commit_sha"] = commit_sha

        if metadata_patch:
            rows = await self.transport.request_json(
                "GET",
                f"{self._prefix}/change_batches",
                params={"id": f"eq.{batch_id}", "select": "state,metadata"},
            )
            if not rows:
                raise NotFoundError("BATCH_NOT_FOUND", f"Batch {batch_id} not found")
            if rows[0]["state"] != edge.source.value:
                logger.info("Batch %s CAS %s lost: state is %s", batch_id, edge, rows[0]["state"])
                return False
            payload["metadata"] = merge_metadata(rows[0].get("metadata"), metadata_patch)

        updated = await self.transport.request_json(
            "PATCH",
            f"{self._prefix}/change_batches",
            params={"id": f"eq.{batch_id}", "state": f"eq.{edge.source.value}"},
            json=payload,
            headers={"Prefer": "return=representation"},
            retry=False,
        )
        applied = bool(updated)
        if applied:
            logger.info("Batch %s moved %s", batch_id, edge)
        else:
            logger.info("Batch %s CAS %s lost", batch_id, edge)
        return applied

    async def list_assets(self, batch_id: str, status: AssetStatus) -> list[AssetVersion]:
        rows = await self.transport.request_json(
            "GET",
            f"{self._prefix}/asset_versions",
            params={
                "batch_id": f"eq.{batch_id}",
                "status": f"eq.{AssetStatus(status).value}",
                "select": _ASSET_SELECT,
                "order": "repo_path.asc",
            },
        )
        return [parse_asset(row) for row in rows or []]

    async def update_asset_status(
        self, batch_id: str, from_status: AssetStatus, to_status: AssetStatus
    ) -> int:
        updated = await self.transport.request_json(
            "PATCH",
            f"{self._prefix}/asset_versions",
            params={
                "batch_id": f"eq.{batch_id}",
                "status": f"eq.{AssetStatus(from_status).value}",
                "select": "id",
            },
            json={"status": AssetStatus(to_status).value, "updated_at": utc_now_iso()},
            headers={"Prefer": "return=representation"},
        )
        return len(updated or [])

    async def update_site(
        self,
        site_id: str,
        fields: dict[str, Any] | None = None,
        settings_patch: dict[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = dict(fields or {})
        payload["updated_at"] = utc_now_iso()

        if settings_patch:
            rows = await self.transport.request_json(
                "GET",
                f"{self._prefix}/sites",
                params={"id": f"eq.{site_id}", "select": "settings"},
            )
            if not rows:
                raise NotFoundError("SITE_NOT_FOUND", f"Site {site_id} not found")
            payload["settings"] = merge_metadata(rows[0].get("settings"), settings_patch)

        updated = await self.transport.request_json(
            "PATCH",
            f"{self._prefix}/sites",
            params={"id": f"eq.{site_id}", "select": "id"},
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if not updated:
            raise NotFoundError("SITE_NOT_FOUND", f"Site {site_id} not found")
