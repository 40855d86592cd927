"""
Outbound Stamper
================
Attaches the signed identity header to outbound inter-node requests.

Usage:
    stamper = OutboundStamper(node_id, key_pair)
    client = httpx.AsyncClient(event_hooks={"request": [stamper]})

    await client.get(url, extensions=outbound_context(principal="alice"))
"""

from typing import Callable, Dict, Optional

import httpx
import structlog

from .assertion import HEADER, encode_header_value, now_ms
from .exceptions import PKIAuthError
from .keys import KeyPair
from .models import NODE_IS_USER, OutboundContext

logger = structlog.get_logger(__name__)

EXTENSION_KEY = "pki_auth"


def outbound_context(principal: Optional[str] = None, internal: bool = True) -> Dict[str, OutboundContext]:
    """
    Build the ``extensions`` mapping for an outbound request.

    Args:
        principal: End user the request acts for, if any
        internal: Whether the call originates from cluster request handling
    """
    return {EXTENSION_KEY: OutboundContext(principal=principal, internal=internal)}


class OutboundStamper:
    """
    httpx request hook producing the identity header.

    Never aborts the request it decorates: on any failure the request simply
    goes out without a header.
    """

    def __init__(
        self,
        node_id: str,
        key_pair: KeyPair,
        enabled: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        self.node_id = node_id
        self.key_pair = key_pair
        self.enabled = enabled
        self.clock = clock

    @staticmethod
    def acting_principal(principal: Optional[str], internal: bool) -> Optional[str]:
        """Principal to assert, or None when no header should be attached."""
        if principal:
            return principal
        if not internal:
            # Not running inside cluster request handling, e.g. a direct call
            return None
        return NODE_IS_USER

    def header_value(self, principal: str) -> str:
        return encode_header_value(self.node_id, principal, self.key_pair, self.clock())

    def stamp(
        self,
        request: httpx.Request,
        principal: Optional[str] = None,
        internal: bool = False,
    ) -> bool:
        """
        Attach the header to a request.

        Returns:
            True if a header was attached
        """
        if not self.enabled:
            return False

        usr = self.acting_principal(principal, internal)
        if usr is None:
            return False

        try:
            request.headers[HEADER] = self.header_value(usr)
        except PKIAuthError as e:
            logger.error("pki_stamp_failed", node_id=self.node_id, url=str(request.url), error=e.message)
            return False
        return True

    async def __call__(self, request: httpx.Request) -> None:
        context = request.extensions.get(EXTENSION_KEY)
        if not isinstance(context, OutboundContext):
            context = OutboundContext()
        self.stamp(request, principal=context.principal, internal=context.internal)
