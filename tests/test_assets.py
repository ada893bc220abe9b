"""
Tests for the asset resolver.

Feature: batchcommit
"""

import hashlib

import pytest

from batchcommit.assets import AssetResolver, verify_content
from batchcommit.exceptions import AssetIntegrityError
from batchcommit.testing import InMemoryBatchStore, InMemoryBlobStore, create_site, stage_batch
from batchcommit.types.assets import AssetStatus, AssetVersion


def make_asset(content: bytes, checksum: str | None = None, size: int | None = None) -> AssetVersion:
    return AssetVersion(
        asset_id="asset-1",
        site_id="site-1",
        storage_path="site-1/asset-1",
        repo_path="index.html",
        file_size_bytes=len(content) if size is None else size,
        checksum=checksum,
        status=AssetStatus.STAGED,
        batch_id="batch-1",
    )


class TestResolver:
    @pytest.mark.asyncio
    async def test_resolves_in_path_order(self, batch_store: InMemoryBatchStore, blob_store: InMemoryBlobStore) -> None:
        create_site(batch_store)
        batch_id = stage_batch(batch_store, blob_store, {"z.txt": b"z", "a/b.txt": b"ab", "m.txt": b"m"})
        resolver = AssetResolver(batch_store, blob_store)

        files = await resolver.resolve(await resolver.list_staged(batch_id))

        assert [f.repo_path for f in files] == ["a/b.txt", "m.txt", "z.txt"]
        assert [f.content for f in files] == [b"ab", b"m", b"z"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, batch_store: InMemoryBatchStore, blob_store: InMemoryBlobStore) -> None:
        create_site(batch_store)
        batch_id = stage_batch(batch_store, blob_store, {})
        resolver = AssetResolver(batch_store, blob_store)

        with pytest.raises(AssetIntegrityError) as exc_info:
            await resolver.resolve(await resolver.list_staged(batch_id))
        assert exc_info.value.code == "EMPTY_BATCH"

    @pytest.mark.asyncio
    async def test_missing_blob(self, batch_store: InMemoryBatchStore, blob_store: InMemoryBlobStore) -> None:
        create_site(batch_store)
        batch_id = stage_batch(batch_store, blob_store, {"a.txt": b"a", "b.txt": b"b"})
        missing = next(a for a in batch_store.assets_of(batch_id) if a.repo_path == "b.txt")
        del blob_store.objects[missing.storage_path]
        resolver = AssetResolver(batch_store, blob_store)

        with pytest.raises(AssetIntegrityError) as exc_info:
            await resolver.resolve(await resolver.list_staged(batch_id))

        assert exc_info.value.code == "BLOB_MISSING"
        assert exc_info.value.storage_path == missing.storage_path
        assert exc_info.value.repo_path == "b.txt"

    @pytest.mark.asyncio
    async def test_only_requested_status(self, batch_store: InMemoryBatchStore, blob_store: InMemoryBlobStore) -> None:
        create_site(batch_store)
        batch_id = stage_batch(batch_store, blob_store, {"a.txt": b"a"})
        batch_store.assets_of(batch_id)[0].status = AssetStatus.PENDING

        assert await AssetResolver(batch_store, blob_store).list_staged(batch_id) == []


class TestVerifyContent:
    def test_size_mismatch(self) -> None:
        with pytest.raises(AssetIntegrityError) as exc_info:
            verify_content(make_asset(b"abc", size=4), b"abc")
        assert exc_info.value.code == "SIZE_MISMATCH"

    def test_checksum_match(self) -> None:
        digest = hashlib.sha256(b"abc").hexdigest()
        verify_content(make_asset(b"abc", checksum=digest), b"abc")
        verify_content(make_asset(b"abc", checksum=f"sha256:{digest.upper()}"), b"abc")

    def test_checksum_mismatch(self) -> None:
        digest = hashlib.sha256(b"abd").hexdigest()
        with pytest.raises(AssetIntegrityError) as exc_info:
            verify_content(make_asset(b"abc", checksum=digest), b"abc")
        assert exc_info.value.code == "CHECKSUM_MISMATCH"

    def test_unsupported_algorithm(self) -> None:
        with pytest.raises(AssetIntegrityError) as exc_info:
            verify_content(make_asset(b"abc", checksum="md5:900150983cd24fb0d6963f7d28e17f72"), b"abc")
        assert exc_info.value.code == "UNSUPPORTED_CHECKSUM"

    def test_no_checksum_recorded(self) -> None:
        verify_content(make_asset(b"abc"), b"abc")
