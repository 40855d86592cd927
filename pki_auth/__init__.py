"""
PKI Auth
========
Node-to-node authentication for clustered services: signed, time-bound
identity headers verified against peers' public keys.
"""

__version__ = "0.1.0"

# Keys
from pki_auth.keys import KeyPair, serialize_public_key, deserialize_public_key

# Codec
from pki_auth.assertion import (
    HEADER,
    KEY_PATH,
    MAX_VALIDITY_MS,
    encode,
    decode,
    encode_header_value,
    parse_header_value,
)

# Models
from pki_auth.models import (
    NODE_IS_USER,
    NODE_PRINCIPAL,
    Principal,
    UserPrincipal,
    NodePrincipal,
    IdentityAssertion,
    VerificationOutcome,
    VerificationResult,
    OutboundContext,
    needs_authorization,
)

# Errors
from pki_auth.exceptions import (
    PKIAuthError,
    KeyGenerationFailure,
    RemoteKeyFetchFailure,
    NodeResolutionError,
    InvalidPublicKey,
    DecryptionFailure,
    MalformedAssertion,
    StaleAssertion,
    PayloadTooLarge,
    EncryptionFailure,
)

# Components
from pki_auth.key_cache import PublicKeyCache
from pki_auth.resolver import NodeResolver, StaticNodeResolver
from pki_auth.fetcher import RemoteKeyFetcher
from pki_auth.outbound import OutboundStamper, outbound_context
from pki_auth.inbound import InboundVerifier
from pki_auth.middleware import (
    PKIAuthMiddleware,
    get_principal,
    require_principal,
    require_node_principal,
)
from pki_auth.routes import create_key_router
from pki_auth.config import PKIAuthConfig
from pki_auth.plugin import PKIAuthPlugin
from pki_auth.logging_config import configure_logging

__all__ = [
    # Keys
    "KeyPair",
    "serialize_public_key",
    "deserialize_public_key",
    # Codec
    "HEADER",
    "KEY_PATH",
    "MAX_VALIDITY_MS",
    "encode",
    "decode",
    "encode_header_value",
    "parse_header_value",
    # Models
    "NODE_IS_USER",
    "NODE_PRINCIPAL",
    "Principal",
    "UserPrincipal",
    "NodePrincipal",
    "IdentityAssertion",
    "VerificationOutcome",
    "VerificationResult",
    "OutboundContext",
    "needs_authorization",
    # Errors
    "PKIAuthError",
    "KeyGenerationFailure",
    "RemoteKeyFetchFailure",
    "NodeResolutionError",
    "InvalidPublicKey",
    "DecryptionFailure",
    "MalformedAssertion",
    "StaleAssertion",
    "PayloadTooLarge",
    "EncryptionFailure",
    # Components
    "PublicKeyCache",
    "NodeResolver",
    "StaticNodeResolver",
    "RemoteKeyFetcher",
    "OutboundStamper",
    "outbound_context",
    "InboundVerifier",
    "PKIAuthMiddleware",
    "get_principal",
    "require_principal",
    "require_node_principal",
    "create_key_router",
    "PKIAuthConfig",
    "PKIAuthPlugin",
    "configure_logging",
]
