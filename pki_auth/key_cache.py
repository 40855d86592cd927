"""
Public Key Cache
================
Node id -> public key, filled lazily from peers.

Entries never expire on a timer. A stale entry is replaced only when a
decode against it fails and the verifier forces a refresh.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from cryptography.hazmat.primitives.asymmetric import rsa
import structlog

from .exceptions import PKIAuthError, RemoteKeyFetchFailure

logger = structlog.get_logger(__name__)

FetchFn = Callable[[str], Awaitable[rsa.RSAPublicKey]]


class PublicKeyCache:
    """
    In-memory public key cache shared by every inbound verification.

    Single-key dict reads and writes are atomic and entries are replaced
    whole, so a reader sees either the old key or the new one. Fetches for
    a missing key are coalesced behind a per-node lock; unrelated nodes
    never wait on each other.
    """

    def __init__(self):
        self._keys: Dict[str, rsa.RSAPublicKey] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def get(self, node_id: str) -> Optional[rsa.RSAPublicKey]:
        """Pure lookup, never does I/O."""
        return self._keys.get(node_id)

    def put(self, node_id: str, public_key: rsa.RSAPublicKey) -> None:
        self._keys[node_id] = public_key

    def node_ids(self) -> List[str]:
        return list(self._keys)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def _acquire_lock(self, node_id: str) -> asyncio.Lock:
        lock = self._locks.setdefault(node_id, asyncio.Lock())
        self._lock_users[node_id] = self._lock_users.get(node_id, 0) + 1
        return lock

    def _release_lock(self, node_id: str) -> None:
        # Sender ids come from unauthenticated headers, so idle locks are dropped
        remaining = self._lock_users[node_id] - 1
        if remaining:
            self._lock_users[node_id] = remaining
        else:
            del self._lock_users[node_id]
            del self._locks[node_id]

    async def fetch_and_store(self, node_id: str, fetch_fn: FetchFn) -> rsa.RSAPublicKey:
        """
        Fetch a node's key and overwrite any cached entry.

        Args:
            node_id: Node to fetch the key for
            fetch_fn: Coroutine resolving the node and downloading its key

        Returns:
            The freshly fetched public key

        Raises:
            RemoteKeyFetchFailure: The fetch failed; the cache is untouched
        """
        try:
            public_key = await fetch_fn(node_id)
        except RemoteKeyFetchFailure:
            raise
        except PKIAuthError as e:
            raise RemoteKeyFetchFailure(e.message, node_id=node_id)
        except Exception as e:
            logger.error("pki_key_fetch_unexpected_error", node_id=node_id, error=str(e))
            raise RemoteKeyFetchFailure(f"Unexpected error fetching key: {e}", node_id=node_id)

        if public_key is None:
            raise RemoteKeyFetchFailure("No key returned", node_id=node_id)

        self._keys[node_id] = public_key
        logger.info("pki_key_cached", node_id=node_id)
        return public_key

    async def get_or_fetch(self, node_id: str, fetch_fn: FetchFn) -> rsa.RSAPublicKey:
        """Return the cached key, fetching it on a miss."""
        public_key = self._keys.get(node_id)
        if public_key is not None:
            return public_key

        lock = self._acquire_lock(node_id)
        try:
            async with lock:
                # Another task may have filled it while we waited
                public_key = self._keys.get(node_id)
                if public_key is not None:
                    return public_key
                logger.debug("pki_key_miss", node_id=node_id)
                return await self.fetch_and_store(node_id, fetch_fn)
        finally:
            self._release_lock(node_id)
