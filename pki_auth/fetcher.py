"""
Remote Key Fetcher
==================
Downloads a peer's public key from its key-exchange endpoint.
"""

import logging
from typing import Optional

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log
import structlog

from .assertion import KEY_PATH
from .exceptions import InvalidPublicKey, NodeResolutionError, RemoteKeyFetchFailure
from .keys import deserialize_public_key
from .resolver import NodeResolver

logger = structlog.get_logger(__name__)

# tenacity's before_sleep_log wants a stdlib logger
retry_logger = logging.getLogger(__name__)

KEY_QUERY_PARAMS = {"wt": "json", "omitHeader": "true"}


class RemoteKeyFetcher:
    """
    Fetch callback used by the public key cache.

    Features:
    - Node id -> base URL through a pluggable resolver.
    - Short bounded retries on connection errors and timeouts.
    - Every failure surfaces as ``RemoteKeyFetchFailure``.
    """

    def __init__(
        self,
        resolver: NodeResolver,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
        key_path: str = KEY_PATH,
    ):
        self.resolver = resolver
        self.key_path = key_path
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self):
        """Close the underlying HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def key_url(self, node_id: str) -> str:
        try:
            base_url = self.resolver.resolve_base_url(node_id)
        except NodeResolutionError:
            raise
        except Exception as e:
            raise NodeResolutionError(f"Could not resolve node: {e}", node_id=node_id)
        return base_url.rstrip("/") + self.key_path

    @retry(
        retry=retry_if_exception_type((httpx.TransportError,)),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        before_sleep=before_sleep_log(retry_logger, logging.WARNING),
        reraise=True
    )
    async def _get(self, url: str) -> httpx.Response:
        response = await self._get_client().get(url, params=KEY_QUERY_PARAMS)
        response.raise_for_status()
        return response

    async def __call__(self, node_id: str) -> rsa.RSAPublicKey:
        """
        Fetch and decode a node's public key.

        Raises:
            RemoteKeyFetchFailure: Resolution, transport, status, body or key decode failed
        """
        url = self.key_url(node_id)
        logger.debug("pki_fetching_public_key", node_id=node_id, url=url)

        try:
            response = await self._get(url)
        except httpx.HTTPStatusError as e:
            logger.error("pki_key_fetch_failed", node_id=node_id, url=url,
                         status_code=e.response.status_code)
            raise RemoteKeyFetchFailure(f"HTTP {e.response.status_code} from {url}", node_id=node_id)
        except httpx.HTTPError as e:
            logger.error("pki_key_fetch_failed", node_id=node_id, url=url, error=str(e))
            raise RemoteKeyFetchFailure(f"Request to {url} failed: {e}", node_id=node_id)

        try:
            body = response.json()
        except ValueError:
            logger.error("pki_key_fetch_bad_body", node_id=node_id, url=url)
            raise RemoteKeyFetchFailure(f"Non-JSON response from {url}", node_id=node_id)

        key = body.get("key") if isinstance(body, dict) else None
        if not key:
            logger.error("pki_no_key_in_response", node_id=node_id, url=url)
            raise RemoteKeyFetchFailure(f"No key available from {url}", node_id=node_id)

        try:
            public_key = deserialize_public_key(key)
        except InvalidPublicKey as e:
            raise RemoteKeyFetchFailure(e.message, node_id=node_id)

        logger.info("pki_public_key_obtained", node_id=node_id, key=key)
        return public_key
