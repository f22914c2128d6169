"""
Tests for LocalStorageProvider.
"""

import os

import pytest

from vaultshift.storage.backends.local import PARTIAL_SUFFIX, PROBE_KEY, LocalStorageProvider
from vaultshift.storage.core import InvalidKeyError, NotFoundError, StorageError


@pytest.fixture
def provider(tmp_path):
    return LocalStorageProvider(tmp_path / "vault")


async def _collect(provider, prefix=""):
    return [info async for info in provider.list(prefix)]


class TestLocalProviderBasics:
    """put/get/exists/delete/stat round trips."""

    def test_root_created(self, tmp_path):
        provider = LocalStorageProvider(tmp_path / "new" / "root")
        assert provider.root.is_dir()
        assert provider.describe() == f"local:{provider.root}"

    def test_root_not_created_when_disabled(self, tmp_path):
        provider = LocalStorageProvider(tmp_path / "missing", create_root=False)
        assert not provider.root.exists()

    @pytest.mark.asyncio
    async def test_put_then_get_roundtrip(self, provider):
        await provider.put("uploads/extracted_files/dev-1/a.txt", b"hello")
        assert await provider.get("uploads/extracted_files/dev-1/a.txt") == b"hello"
        assert (provider.root / "uploads/extracted_files/dev-1/a.txt").read_bytes() == b"hello"

    @pytest.mark.asyncio
    async def test_put_accepts_str_and_async_iterable(self, provider):
        async def chunks():
            yield b"ab"
            yield b"cd"

        await provider.put("text.txt", "héllo")
        await provider.put("stream.bin", chunks())
        assert await provider.get("text.txt") == "héllo".encode()
        assert await provider.get("stream.bin") == b"abcd"

    @pytest.mark.asyncio
    async def test_put_overwrites(self, provider):
        await provider.put("a.txt", b"one")
        await provider.put("a.txt", b"two")
        assert await provider.get("a.txt") == b"two"

    @pytest.mark.asyncio
    async def test_put_leaves_no_partial_files(self, provider):
        await provider.put("dir/a.txt", b"data")
        leftovers = [name for name in os.listdir(provider.root / "dir") if name.endswith(PARTIAL_SUFFIX)]
        assert leftovers == []

    @pytest.mark.asyncio
    async def test_failed_stream_put_removes_partial_file(self, provider):
        async def broken():
            yield b"partial"
            raise RuntimeError("upload interrupted")

        with pytest.raises(RuntimeError):
            await provider.put("dir/broken.bin", broken())

        assert os.listdir(provider.root / "dir") == []
        assert not await provider.exists("dir/broken.bin")

    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, provider):
        with pytest.raises(NotFoundError) as exc_info:
            await provider.get("missing.txt")
        assert exc_info.value.key == "missing.txt"
        assert exc_info.value.backend == "local"

    @pytest.mark.asyncio
    async def test_get_stream_chunks(self, provider):
        await provider.put("big.bin", b"x" * 10)
        chunks = [chunk async for chunk in provider.get_stream("big.bin", chunk_size=4)]
        assert chunks == [b"xxxx", b"xxxx", b"xx"]

    @pytest.mark.asyncio
    async def test_get_stream_missing_raises_not_found(self, provider):
        with pytest.raises(NotFoundError):
            async for _ in provider.get_stream("missing.bin"):
                pass

    @pytest.mark.asyncio
    async def test_exists(self, provider):
        assert await provider.exists("a.txt") is False
        await provider.put("a.txt", b"1")
        assert await provider.exists("a.txt") is True

    @pytest.mark.asyncio
    async def test_directory_is_not_an_object(self, provider):
        await provider.put("dir/a.txt", b"1")
        assert await provider.exists("dir/a.txt")
        with pytest.raises(NotFoundError):
            await provider.stat("dir/a.txt/nested")

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, provider):
        await provider.put("a.txt", b"1")
        await provider.delete("a.txt")
        await provider.delete("a.txt")
        assert await provider.exists("a.txt") is False

    @pytest.mark.asyncio
    async def test_stat(self, provider):
        await provider.put("a.txt", b"12345")
        stat = await provider.stat("a.txt")
        assert stat.size == 5
        assert stat.last_modified is not None
        assert stat.last_modified.tzinfo is not None

    @pytest.mark.asyncio
    async def test_stat_missing_raises_not_found(self, provider):
        with pytest.raises(NotFoundError):
            await provider.stat("missing.txt")

    @pytest.mark.asyncio
    async def test_keys_are_normalized(self, provider):
        await provider.put("/uploads//a.txt", b"1")
        assert await provider.get("uploads/a.txt") == b"1"

    @pytest.mark.asyncio
    async def test_put_below_existing_object_raises_storage_error(self, provider):
        await provider.put("uploads/a", b"file")

        with pytest.raises(StorageError, match="parent path is an existing object"):
            await provider.put("uploads/a/b.txt", b"nested")
        assert await provider.get("uploads/a") == b"file"

    @pytest.mark.asyncio
    async def test_put_onto_directory_raises_storage_error(self, provider):
        await provider.put("uploads/dir/a.txt", b"1")

        with pytest.raises(StorageError, match="a directory exists at that key"):
            await provider.put("uploads/dir", b"2")
        assert await provider.get("uploads/dir/a.txt") == b"1"


class TestLocalProviderKeyConfinement:
    """Keys can never reach outside the root."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["../escape.txt", "uploads/../../escape.txt", "a\\b", ""])
    async def test_invalid_keys_rejected_by_every_operation(self, provider, key):
        with pytest.raises(InvalidKeyError):
            await provider.put(key, b"x")
        with pytest.raises(InvalidKeyError):
            await provider.get(key)
        with pytest.raises(InvalidKeyError):
            await provider.exists(key)
        with pytest.raises(InvalidKeyError):
            await provider.delete(key)
        with pytest.raises(InvalidKeyError):
            await provider.stat(key)

        assert not (provider.root.parent / "escape.txt").exists()

    @pytest.mark.asyncio
    async def test_symlink_escape_rejected(self, provider, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_bytes(b"secret")
        os.symlink(outside, provider.root / "link")

        with pytest.raises(InvalidKeyError) as exc_info:
            await provider.get("link/secret.txt")
        assert exc_info.value.reason == "resolves outside the storage root"

    @pytest.mark.asyncio
    async def test_invalid_prefix_rejected(self, provider):
        with pytest.raises(InvalidKeyError):
            await _collect(provider, "../")


class TestLocalProviderList:
    """Lazy, depth-first listing."""

    @pytest.mark.asyncio
    async def test_list_empty_root(self, provider):
        assert await _collect(provider) == []

    @pytest.mark.asyncio
    async def test_list_is_depth_first_and_sorted(self, provider):
        for key in ["b.txt", "a/2.txt", "a/1.txt", "a/z/deep.txt", "c/x.txt"]:
            await provider.put(key, b"data")

        keys = [info.key for info in await _collect(provider)]
        assert keys == ["b.txt", "a/1.txt", "a/2.txt", "a/z/deep.txt", "c/x.txt"]

    @pytest.mark.asyncio
    async def test_list_reports_size_and_mtime(self, provider):
        await provider.put("a.txt", b"1234")
        (info,) = await _collect(provider)
        assert info.size == 4
        assert info.last_modified is not None

    @pytest.mark.asyncio
    async def test_list_with_prefix(self, provider):
        for key in ["uploads/a/1.txt", "uploads/ab.txt", "uploads/b/2.txt", "other/3.txt"]:
            await provider.put(key, b"x")

        assert sorted(i.key for i in await _collect(provider, "uploads/a")) == [
            "uploads/a/1.txt",
            "uploads/ab.txt",
        ]
        assert [i.key for i in await _collect(provider, "uploads/b/")] == ["uploads/b/2.txt"]
        assert await _collect(provider, "missing/") == []

    @pytest.mark.asyncio
    async def test_list_skips_partial_files_and_symlinks(self, provider, tmp_path):
        await provider.put("a.txt", b"x")
        (provider.root / f".a.txt.1234{PARTIAL_SUFFIX}").write_bytes(b"partial")
        target = tmp_path / "target.txt"
        target.write_bytes(b"t")
        os.symlink(target, provider.root / "link.txt")

        assert [i.key for i in await _collect(provider)] == ["a.txt"]

    @pytest.mark.asyncio
    async def test_list_is_restartable(self, provider):
        for key in ["a.txt", "b.txt", "c.txt"]:
            await provider.put(key, b"x")

        iterator = provider.list()
        first = await iterator.__anext__()
        await iterator.aclose()

        assert first.key == "a.txt"
        assert [i.key for i in await _collect(provider)] == ["a.txt", "b.txt", "c.txt"]

    @pytest.mark.asyncio
    async def test_list_hides_reserved_root_entries(self, provider):
        await provider.put("uploads/a.txt", b"x")
        await provider.put("uploads/.env", b"user file")
        (provider.root / ".vaultshift").mkdir()
        (provider.root / ".vaultshift" / "settings.json").write_text("{}")
        (provider.root / ".env").write_text("SECRET=1\n")
        (provider.root / PROBE_KEY).write_bytes(b"leftover")

        assert [i.key for i in await _collect(provider)] == ["uploads/.env", "uploads/a.txt"]
        assert await _collect(provider, ".vaultshift/") == []
        assert await _collect(provider, ".env") == []

    def test_key_for_path(self, provider, tmp_path):
        assert provider.key_for_path(provider.root / ".vaultshift" / "settings.json") == ".vaultshift/settings.json"
        assert provider.key_for_path(tmp_path / "elsewhere.json") is None
        assert provider.key_for_path(provider.root) is None


class TestLocalProviderPrune:
    @pytest.mark.asyncio
    async def test_prune_removes_empty_dirs_only(self, provider):
        await provider.put("uploads/dev-1/a.txt", b"1")
        await provider.put("uploads/dev-2/b.txt", b"2")
        await provider.delete("uploads/dev-1/a.txt")

        removed = await provider.prune_empty_dirs()

        assert removed == 1
        assert not (provider.root / "uploads/dev-1").exists()
        assert (provider.root / "uploads/dev-2/b.txt").exists()
        assert provider.root.is_dir()

    @pytest.mark.asyncio
    async def test_prune_never_removes_root(self, provider):
        assert await provider.prune_empty_dirs() == 0
        assert provider.root.is_dir()

    @pytest.mark.asyncio
    async def test_prune_missing_prefix(self, provider):
        assert await provider.prune_empty_dirs("nothing/") == 0


class TestLocalProviderConnection:
    @pytest.mark.asyncio
    async def test_connection_ok(self, provider):
        result = await provider.test_connection()
        assert result.success is True
        assert result.details["exists"] is True
        assert result.details["readable"] is True
        assert "can_write" not in result.details
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_connection_probe_write(self, provider):
        result = await provider.test_connection(probe_write=True)
        assert result.success is True
        assert result.details["can_write"] is True
        assert result.details["can_read"] is True
        assert result.details["can_delete"] is True
        assert not await provider.exists(PROBE_KEY)

    @pytest.mark.asyncio
    async def test_connection_missing_root(self, tmp_path):
        provider = LocalStorageProvider(tmp_path / "missing", create_root=False)
        result = await provider.test_connection()
        assert result.success is False
        assert "does not exist" in result.message

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, provider):
        async with provider as p:
            assert p is provider
            assert not p.is_closed
        assert provider.is_closed
