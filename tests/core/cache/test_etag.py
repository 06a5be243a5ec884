"""Tests for the GitHub ETag cache."""

from unittest.mock import AsyncMock, patch

import orjson

from macup.core.cache.etag import ETagCache


class TestETagCache:
    def test_put_and_get(self):
        cache = ETagCache()
        cache.put("owner/repo", '"abc"', '{"tag_name": "v1"}')
        entry = cache.get("owner/repo")
        assert entry.etag == '"abc"'
        assert entry.response_body == '{"tag_name": "v1"}'
        assert len(cache) == 1

    async def test_save_and_reload(self, tmp_path):
        cache_file = tmp_path / "etags.json"
        cache = ETagCache(cache_file)
        cache.put("owner/repo", '"abc"', "{}")
        await cache.save()

        assert orjson.loads(cache_file.read_bytes()) == {
            "owner/repo": {"etag": '"abc"', "response_body": "{}"}
        }
        reloaded = ETagCache(cache_file)
        await reloaded.load()
        assert reloaded.get("owner/repo").etag == '"abc"'

    async def test_save_keeps_entries_from_disk(self, tmp_path):
        cache_file = tmp_path / "etags.json"
        cache_file.write_bytes(
            orjson.dumps(
                {
                    "old/repo": {"etag": '"1"', "response_body": "{}"},
                    "owner/repo": {"etag": '"stale"', "response_body": "{}"},
                }
            )
        )
        cache = ETagCache(cache_file)
        cache.put("owner/repo", '"abc"', "{}")
        await cache.save()

        saved = orjson.loads(cache_file.read_bytes())
        assert saved["old/repo"]["etag"] == '"1"'
        assert saved["owner/repo"]["etag"] == '"abc"'

    async def test_load_reads_file_in_worker_thread(self, tmp_path):
        cache_file = tmp_path / "etags.json"
        cache_file.write_bytes(b"{}")
        cache = ETagCache(cache_file)
        with patch(
            "macup.core.cache.etag.asyncio.to_thread",
            new_callable=AsyncMock,
            return_value=b'{"o/r": {"etag": "x", "response_body": ""}}',
        ) as to_thread:
            await cache.load()
            await cache.load()

        to_thread.assert_awaited_once_with(cache_file.read_bytes)
        assert cache.get("o/r").etag == "x"

    async def test_save_without_changes_writes_nothing(self, tmp_path):
        cache_file = tmp_path / "etags.json"
        await ETagCache(cache_file).save()
        assert not cache_file.exists()

    async def test_corrupt_file_starts_empty(self, tmp_path):
        cache_file = tmp_path / "etags.json"
        cache_file.write_text("not json")
        cache = ETagCache(cache_file)
        await cache.load()
        assert cache.get("owner/repo") is None
        assert len(cache) == 0
