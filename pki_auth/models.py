"""
PKI Auth Models
===============
Principals, verification outcomes and the outbound request context.
"""

from typing import Optional
from dataclasses import dataclass
from enum import Enum

# Reserved principal name meaning "the node itself, not an end user"
NODE_IS_USER = "$"


@dataclass(frozen=True)
class Principal:
    """An authenticated identity attached to an inbound request."""
    name: str


@dataclass(frozen=True)
class UserPrincipal(Principal):
    """An end user on whose behalf a peer node is acting."""
    pass


@dataclass(frozen=True)
class NodePrincipal(Principal):
    """A cluster member acting as itself."""
    pass


# Shared identity for cluster-internal traffic
NODE_PRINCIPAL = NodePrincipal(NODE_IS_USER)


def principal_for(name: str) -> Principal:
    """Map a claimed principal name to the principal attached downstream."""
    if name == NODE_IS_USER:
        return NODE_PRINCIPAL
    return UserPrincipal(name)


def needs_authorization(principal: Optional[Principal]) -> bool:
    """Internal node traffic bypasses authorization; everything else does not."""
    return principal is not NODE_PRINCIPAL


class VerificationOutcome(str, Enum):
    """How an inbound verification ended."""
    AUTHENTICATED = "authenticated"
    SKIPPED = "skipped"
    NO_HEADER = "no_header"
    MALFORMED_HEADER = "malformed_header"
    KEY_UNAVAILABLE = "key_unavailable"
    DECRYPTION_FAILED = "decryption_failed"
    MALFORMED_ASSERTION = "malformed_assertion"
    STALE_ASSERTION = "stale_assertion"


@dataclass
class IdentityAssertion:
    """A decrypted '<principal> <timestamp>' payload."""
    principal: str
    timestamp_ms: int


@dataclass
class VerificationResult:
    """Result of verifying one inbound header."""
    outcome: VerificationOutcome
    principal: Optional[Principal] = None
    sender_node_id: Optional[str] = None
    timestamp_ms: Optional[int] = None
    refreshed: bool = False

    @property
    def authenticated(self) -> bool:
        return self.outcome == VerificationOutcome.AUTHENTICATED


@dataclass
class OutboundContext:
    """
    Acting identity for one outbound request.

    Carried on ``httpx.Request.extensions`` so the request hook never has to
    look at ambient state.
    """
    principal: Optional[str] = None
    internal: bool = False
