"""
Unit Tests for the Public Key Cache
===================================
"""

import asyncio

import pytest


class TestPublicKeyCache:
    """Tests for lookup, fetch and refresh."""

    def test_get_miss(self):
        """Should return None for an unknown node without fetching."""
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()

        assert cache.get("node1") is None
        assert "node1" not in cache
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_fetch_and_store_overwrites(self, key_pair, peer_key_pair):
        """Should replace an existing entry with the fetched key."""
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()
        cache.put("node1", key_pair.public_key)

        async def fetch(node_id):
            return peer_key_pair.public_key

        key = await cache.fetch_and_store("node1", fetch)

        assert key is peer_key_pair.public_key
        assert cache.get("node1") is peer_key_pair.public_key
        assert cache.node_ids() == ["node1"]

    @pytest.mark.asyncio
    async def test_failed_fetch_leaves_cache_untouched(self, key_pair):
        """A failed fetch should raise and keep the old entry."""
        from pki_auth.key_cache import PublicKeyCache
        from pki_auth.exceptions import RemoteKeyFetchFailure

        cache = PublicKeyCache()
        cache.put("node1", key_pair.public_key)

        async def fetch(node_id):
            raise RemoteKeyFetchFailure("connection refused", node_id=node_id)

        with pytest.raises(RemoteKeyFetchFailure):
            await cache.fetch_and_store("node1", fetch)

        assert cache.get("node1") is key_pair.public_key

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_is_wrapped(self):
        """Arbitrary fetch errors should surface as RemoteKeyFetchFailure."""
        from pki_auth.key_cache import PublicKeyCache
        from pki_auth.exceptions import RemoteKeyFetchFailure

        cache = PublicKeyCache()

        async def fetch(node_id):
            raise RuntimeError("boom")

        with pytest.raises(RemoteKeyFetchFailure) as exc_info:
            await cache.fetch_and_store("node1", fetch)

        assert exc_info.value.node_id == "node1"
        assert "node1" not in cache

    @pytest.mark.asyncio
    async def test_fetch_returning_none(self):
        """A fetch that yields nothing should not create an entry."""
        from pki_auth.key_cache import PublicKeyCache
        from pki_auth.exceptions import RemoteKeyFetchFailure

        cache = PublicKeyCache()

        async def fetch(node_id):
            return None

        with pytest.raises(RemoteKeyFetchFailure):
            await cache.fetch_and_store("node1", fetch)

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_get_or_fetch_uses_cache(self, key_pair):
        """A cached key should be returned without calling fetch."""
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()
        cache.put("node1", key_pair.public_key)

        async def fetch(node_id):
            raise AssertionError("should not fetch")

        assert await cache.get_or_fetch("node1", fetch) is key_pair.public_key

    @pytest.mark.asyncio
    async def test_concurrent_misses(self, key_pair):
        """Simultaneous misses should all get the key from a single fetch."""
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()
        calls = []

        async def fetch(node_id):
            calls.append(node_id)
            await asyncio.sleep(0.01)
            return key_pair.public_key

        keys = await asyncio.gather(*[cache.get_or_fetch("node1", fetch) for _ in range(20)])

        assert all(k is key_pair.public_key for k in keys)
        assert calls == ["node1"]

    @pytest.mark.asyncio
    async def test_unrelated_nodes_do_not_wait(self, key_pair, peer_key_pair):
        """A slow fetch for one node should not block another node's lookup."""
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()
        cache.put("node2", peer_key_pair.public_key)
        release = asyncio.Event()

        async def slow_fetch(node_id):
            await release.wait()
            return key_pair.public_key

        async def fail_fetch(node_id):
            raise AssertionError("should not fetch")

        pending = asyncio.ensure_future(cache.get_or_fetch("node1", slow_fetch))
        await asyncio.sleep(0)

        assert await cache.get_or_fetch("node2", fail_fetch) is peer_key_pair.public_key
        assert not pending.done()

        release.set()
        assert await pending is key_pair.public_key

    @pytest.mark.asyncio
    async def test_failed_fetches_leave_no_locks(self):
        """Unknown senders should not leave per-node locks behind."""
        from pki_auth.exceptions import RemoteKeyFetchFailure
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()

        async def fail_fetch(node_id):
            raise RemoteKeyFetchFailure("unknown node", node_id=node_id)

        for i in range(50):
            with pytest.raises(RemoteKeyFetchFailure):
                await cache.get_or_fetch(f"bogus-{i}", fail_fetch)

        assert len(cache) == 0
        assert cache._locks == {}
        assert cache._lock_users == {}

    @pytest.mark.asyncio
    async def test_lock_released_after_coalesced_fetch(self, key_pair):
        """The lock should be dropped once every waiter is done."""
        from pki_auth.key_cache import PublicKeyCache

        cache = PublicKeyCache()
        release = asyncio.Event()

        async def slow_fetch(node_id):
            await release.wait()
            return key_pair.public_key

        pending = [asyncio.ensure_future(cache.get_or_fetch("node1", slow_fetch)) for _ in range(5)]
        await asyncio.sleep(0)

        assert list(cache._locks) == ["node1"]
        assert cache._lock_users == {"node1": 5}

        release.set()
        results = await asyncio.gather(*pending)

        assert all(r is key_pair.public_key for r in results)
        assert cache._locks == {}
        assert cache._lock_users == {}
