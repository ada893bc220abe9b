"""
Asset resolver.

Enumerates the staged asset versions of a batch and fetches their bytes from
blob storage. A batch never commits partially: any missing or corrupt blob
fails the whole batch with AssetIntegrityError.
"""

import hashlib
from abc import ABC, abstractmethod
from urllib.parse import quote

from batchcommit.exceptions import (
    AssetIntegrityError,
    BadRequestError,
    ResourceNotFoundError,
)
from batchcommit.logging import get_logger
from batchcommit.store import BatchStore
from batchcommit.transport import HTTPTransport
from batchcommit.types.assets import AssetStatus, AssetVersion, StagedFile

logger = get_logger("assets")


class BlobNotFoundError(Exception):
    """Raised by blob stores when no object exists at a path."""

    def __init__(self, storage_path: str) -> None:
        super().__init__(f"No object at {storage_path}")
        self.storage_path = storage_path


class BlobStore(ABC):
    """Abstract read access to staged asset bytes, keyed by path."""

    @abstractmethod
    async def fetch(self, storage_path: str) -> bytes:
        """Return the object's bytes. Raises BlobNotFoundError if absent."""
        pass


class SupabaseBlobStore(BlobStore):
    """Blob store backed by a Supabase Storage bucket (service role access)."""

    def __init__(self, transport: HTTPTransport, bucket: str) -> None:
        self.transport = transport
        self.bucket = bucket

    @classmethod
    def connect(cls, url: str, service_key: str, bucket: str, timeout: float = 30.0) -> "SupabaseBlobStore":
        transport = HTTPTransport(
            base_url=url,
            headers={"apikey": service_key, "Authorization": f"Bearer {service_key}"},
            timeout=timeout,
        )
        return cls(transport, bucket)

    async def close(self) -> None:
        await self.transport.close()

    async def fetch(self, storage_path: str) -> bytes:
        path = f"/storage/v1/object/{quote(self.bucket, safe='')}/{quote(storage_path.lstrip('/'))}"
        try:
            return await self.transport.request_bytes("GET", path)
        except ResourceNotFoundError as e:
            raise BlobNotFoundError(storage_path) from e
        except BadRequestError as e:
            # Storage reports a missing object as 400 with an embedded 404
            body = e.body if isinstance(e.body, dict) else {}
            if str(body.get("statusCode")) == "404" or body.get("error") == "not_found":
                raise BlobNotFoundError(storage_path) from e
            raise


def _expected_digest(checksum: str) -> str:
    algorithm, sep, digest = checksum.partition(":")
    if sep and algorithm.lower() != "sha256":
        raise ValueError(f"Unsupported checksum algorithm: {algorithm}")
    return (digest if sep else checksum).strip().lower()


def verify_content(asset: AssetVersion, content: bytes) -> None:
    """
    Check fetched bytes against the size and checksum recorded at staging time.

    Raises:
        AssetIntegrityError: On any mismatch
    """
    if len(content) != asset.file_size_bytes:
        raise AssetIntegrityError(
            "SIZE_MISMATCH",
            f"Asset {asset.asset_id} is {len(content)} bytes, expected {asset.file_size_bytes}",
            storage_path=asset.storage_path,
            repo_path=asset.repo_path,
        )

    if not asset.checksum:
        return

    try:
        expected = _expected_digest(asset.checksum)
    except ValueError as e:
        raise AssetIntegrityError(
            "UNSUPPORTED_CHECKSUM",
            str(e),
            storage_path=asset.storage_path,
            repo_path=asset.repo_path,
        ) from e

    actual = hashlib.sha256(content).hexdigest()
    if actual != expected:
        raise AssetIntegrityError(
            "CHECKSUM_MISMATCH",
            f"Asset {asset.asset_id} content does not match its recorded checksum",
            storage_path=asset.storage_path,
            repo_path=asset.repo_path,
        )


class AssetResolver:
    """Resolves a batch's staged assets into committed-ready files."""

    def __init__(self, store: BatchStore, blobs: BlobStore) -> None:
        self.store = store
        self.blobs = blobs

    async def list_staged(self, batch_id: str, status: AssetStatus = AssetStatus.STAGED) -> list[AssetVersion]:
        """
        List a batch's assets, ordered by destination path ascending.

        The order is re-applied locally so tree construction and commit
        content are reproducible across retries whatever the store returns.
        """
        assets = await self.store.list_assets(batch_id, status)
        return sorted(assets, key=lambda asset: asset.repo_path)

    async def fetch_bytes(self, asset: AssetVersion) -> bytes:
        """
        Fetch and verify one asset's bytes.

        Raises:
            AssetIntegrityError: If the blob is missing or corrupt
        """
        try:
            content = await self.blobs.fetch(asset.storage_path)
        except BlobNotFoundError as e:
            raise AssetIntegrityError(
                "BLOB_MISSING",
                f"Staged content for {asset.repo_path} is missing from blob storage",
                storage_path=asset.storage_path,
                repo_path=asset.repo_path,
            ) from e

        verify_content(asset, content)
        return content

    async def resolve(self, assets: list[AssetVersion]) -> list[StagedFile]:
        """
        Fetch every asset's content, in order.

        Raises:
            AssetIntegrityError: If the list is empty or any blob is missing/corrupt
        """
        if not assets:
            raise AssetIntegrityError("EMPTY_BATCH", "Batch has no staged assets")

        files = []
        for asset in assets:
            content = await self.fetch_bytes(asset)
            files.append(StagedFile(repo_path=asset.repo_path, content=content, asset_id=asset.asset_id))

        logger.debug("Resolved %d staged files (%d bytes)", len(files), sum(f.size for f in files))
        return files
