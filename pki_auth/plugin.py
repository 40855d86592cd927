"""
PKI Auth Plugin
===============
Composition root: one key pair, one key cache and both interceptors per node.

Usage:
    plugin = PKIAuthPlugin.from_config(PKIAuthConfig.from_env())
    plugin.install(app)

    async with plugin.create_client() as client:
        await client.get(peer_url, extensions=outbound_context(principal="alice"))
"""

from typing import Optional

import httpx
from fastapi import FastAPI
from cryptography.hazmat.primitives.asymmetric import rsa
import structlog

from .assertion import KEY_PATH, MAX_VALIDITY_MS
from .config import PKIAuthConfig
from .fetcher import RemoteKeyFetcher
from .inbound import InboundVerifier
from .key_cache import FetchFn, PublicKeyCache
from .keys import DEFAULT_KEY_SIZE, KeyPair
from .middleware import PKIAuthMiddleware
from .models import Principal, needs_authorization
from .outbound import OutboundStamper
from .resolver import NodeResolver, StaticNodeResolver
from .routes import create_key_router

logger = structlog.get_logger(__name__)


class PKIAuthPlugin:
    """Owns every node authentication component for the process lifetime."""

    def __init__(
        self,
        node_id: str,
        resolver: Optional[NodeResolver] = None,
        key_pair: Optional[KeyPair] = None,
        key_cache: Optional[PublicKeyCache] = None,
        fetch_fn: Optional[FetchFn] = None,
        fetch_client: Optional[httpx.AsyncClient] = None,
        enabled: bool = True,
        max_validity_ms: int = MAX_VALIDITY_MS,
        key_size: int = DEFAULT_KEY_SIZE,
        key_path: str = KEY_PATH,
        fetch_timeout: float = 5.0,
        skip_paths=None,
    ):
        self.node_id = node_id
        self.enabled = enabled
        self.key_path = key_path
        self.skip_paths = list(skip_paths or [])

        self.key_pair = key_pair or KeyPair(key_size=key_size)
        self.key_cache = key_cache if key_cache is not None else PublicKeyCache()

        self.fetcher: Optional[RemoteKeyFetcher] = None
        if fetch_fn is None:
            self.fetcher = RemoteKeyFetcher(
                resolver or StaticNodeResolver(),
                client=fetch_client,
                timeout=fetch_timeout,
                key_path=key_path,
            )
            fetch_fn = self.fetcher

        self.stamper = OutboundStamper(node_id, self.key_pair, enabled=enabled)
        self.verifier = InboundVerifier(self.key_cache, fetch_fn, max_validity_ms=max_validity_ms)

        if enabled and not node_id:
            logger.warning("pki_node_id_not_configured")

    @classmethod
    def from_config(
        cls,
        config: PKIAuthConfig,
        resolver: Optional[NodeResolver] = None,
        **kwargs,
    ) -> "PKIAuthPlugin":
        if resolver is None:
            resolver = StaticNodeResolver.from_string(config.cluster_nodes)
        return cls(
            config.node_id,
            resolver=resolver,
            enabled=config.enabled,
            max_validity_ms=config.max_validity_ms,
            key_size=config.key_size,
            key_path=config.key_path,
            fetch_timeout=config.fetch_timeout,
            skip_paths=config.skip_paths,
            **kwargs,
        )

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.key_pair.public_key

    @property
    def public_key_str(self) -> str:
        return self.key_pair.public_key_str

    def install(self, app: FastAPI) -> None:
        """Mount the key-exchange endpoint and the verification middleware."""
        app.include_router(create_key_router(self.key_pair, path=self.key_path))
        app.add_middleware(
            PKIAuthMiddleware,
            verifier=self.verifier,
            enabled=self.enabled,
            key_path=self.key_path,
            skip_paths=self.skip_paths,
        )
        logger.info("pki_auth_installed", node_id=self.node_id, enabled=self.enabled)

    def create_client(self, **kwargs) -> httpx.AsyncClient:
        """An httpx client whose requests carry this node's identity header."""
        event_hooks = dict(kwargs.pop("event_hooks", None) or {})
        event_hooks["request"] = list(event_hooks.get("request", [])) + [self.stamper]
        return httpx.AsyncClient(event_hooks=event_hooks, **kwargs)

    @staticmethod
    def needs_authorization(principal: Optional[Principal]) -> bool:
        return needs_authorization(principal)

    async def aclose(self) -> None:
        if self.fetcher is not None:
            await self.fetcher.aclose()
