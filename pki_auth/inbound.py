"""
Inbound Verifier
================
Turns an inbound identity header into a principal.

Failures never raise: each one ends in a ``VerificationResult`` with no
principal, and the downstream authorization layer decides whether an
unauthenticated request is acceptable.
"""

from typing import Callable, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa
import structlog

from .assertion import (
    MAX_VALIDITY_MS,
    decode,
    decode_base64,
    ensure_fresh,
    now_ms,
    parse_header_value,
)
from .exceptions import DecryptionFailure, MalformedAssertion, RemoteKeyFetchFailure, StaleAssertion
from .key_cache import FetchFn, PublicKeyCache
from .models import (
    IdentityAssertion,
    VerificationOutcome,
    VerificationResult,
    principal_for,
)

logger = structlog.get_logger(__name__)


class InboundVerifier:
    """
    Header -> principal state machine.

    A decryption failure forces one key refresh and one more decode attempt;
    a malformed payload is never retried since a new key cannot fix it.
    """

    def __init__(
        self,
        key_cache: PublicKeyCache,
        fetch_fn: FetchFn,
        max_validity_ms: int = MAX_VALIDITY_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.key_cache = key_cache
        self.fetch_fn = fetch_fn
        self.max_validity_ms = max_validity_ms
        self.clock = clock

    async def _cached_key(self, node_id: str) -> Optional[rsa.RSAPublicKey]:
        try:
            return await self.key_cache.get_or_fetch(node_id, self.fetch_fn)
        except RemoteKeyFetchFailure as e:
            logger.warning("pki_key_unavailable", node_id=node_id, error=e.message)
            return None

    async def _refreshed_key(self, node_id: str) -> Optional[rsa.RSAPublicKey]:
        try:
            return await self.key_cache.fetch_and_store(node_id, self.fetch_fn)
        except RemoteKeyFetchFailure as e:
            logger.error("pki_key_refresh_failed", node_id=node_id, error=e.message)
            return None

    @staticmethod
    def _decode_with_key(
        cipher: bytes, public_key: Optional[rsa.RSAPublicKey]
    ) -> Tuple[Optional[IdentityAssertion], Optional[VerificationOutcome]]:
        if public_key is None:
            return None, VerificationOutcome.KEY_UNAVAILABLE
        try:
            return decode(cipher, public_key), None
        except DecryptionFailure:
            return None, VerificationOutcome.DECRYPTION_FAILED
        except MalformedAssertion as e:
            logger.warning("pki_malformed_assertion", error=e.message)
            return None, VerificationOutcome.MALFORMED_ASSERTION

    async def verify(
        self,
        header: Optional[str],
        received_ms: Optional[int] = None,
    ) -> VerificationResult:
        """
        Verify one inbound header value.

        Args:
            header: Raw header value, or None when absent
            received_ms: Receive time; defaults to now

        Returns:
            VerificationResult carrying the principal when authenticated
        """
        if received_ms is None:
            received_ms = self.clock()

        if header is None:
            logger.error("pki_no_auth_header")
            return VerificationResult(VerificationOutcome.NO_HEADER)

        parsed = parse_header_value(header)
        if parsed is None:
            logger.error("pki_invalid_auth_header", header=header)
            return VerificationResult(VerificationOutcome.MALFORMED_HEADER)

        node_id, cipher_b64 = parsed
        try:
            cipher = decode_base64(cipher_b64)
        except DecryptionFailure as e:
            logger.error("pki_undecipherable_header", node_id=node_id, error=e.message)
            return VerificationResult(VerificationOutcome.DECRYPTION_FAILED, sender_node_id=node_id)

        refreshed = False
        assertion, failure = self._decode_with_key(cipher, await self._cached_key(node_id))

        if failure in (VerificationOutcome.DECRYPTION_FAILED, VerificationOutcome.KEY_UNAVAILABLE):
            logger.warning("pki_decrypt_failed_refreshing_key", node_id=node_id)
            refreshed = True
            assertion, failure = self._decode_with_key(cipher, await self._refreshed_key(node_id))

        if failure is not None:
            logger.error("pki_header_not_deciphered", node_id=node_id, outcome=failure.value)
            return VerificationResult(failure, sender_node_id=node_id, refreshed=refreshed)

        try:
            ensure_fresh(assertion, received_ms, self.max_validity_ms)
        except StaleAssertion as e:
            logger.error("pki_stale_assertion", node_id=node_id, error=e.message)
            return VerificationResult(
                VerificationOutcome.STALE_ASSERTION,
                sender_node_id=node_id,
                timestamp_ms=assertion.timestamp_ms,
                refreshed=refreshed,
            )

        return VerificationResult(
            VerificationOutcome.AUTHENTICATED,
            principal=principal_for(assertion.principal),
            sender_node_id=node_id,
            timestamp_ms=assertion.timestamp_ms,
            refreshed=refreshed,
        )
