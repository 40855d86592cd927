"""
PKI Auth Exceptions
===================
Error types raised by the key, codec and fetch layers.

Everything except ``KeyGenerationFailure`` is recovered inside the inbound
verifier and degrades the request to "unauthenticated".
"""

from typing import Optional


class PKIAuthError(Exception):
    """Base exception for all node authentication errors."""
    def __init__(self, message: str, node_id: Optional[str] = None):
        self.message = message
        self.node_id = node_id
        if node_id:
            super().__init__(f"[{node_id}] {message}")
        else:
            super().__init__(message)

class KeyGenerationFailure(PKIAuthError):
    """Raised when the local key pair cannot be created. Fatal at startup."""
    pass

class RemoteKeyFetchFailure(PKIAuthError):
    """Raised when a peer's public key could not be obtained."""
    pass

class NodeResolutionError(RemoteKeyFetchFailure):
    """Raised when a node id cannot be mapped to a base URL."""
    pass

class InvalidPublicKey(PKIAuthError):
    """Raised when a public key string cannot be decoded."""
    pass

class DecryptionFailure(PKIAuthError):
    """Raised when a cipher does not match the given public key."""
    pass

class MalformedAssertion(PKIAuthError):
    """Raised when a decrypted assertion is not '<principal> <millis>'."""
    pass

class StaleAssertion(PKIAuthError):
    """Raised when an assertion is older than the validity window."""
    pass

class PayloadTooLarge(PKIAuthError):
    """Raised when a plaintext does not fit in a single RSA block."""
    pass

class EncryptionFailure(PKIAuthError):
    """Raised when the private-key operation produces an unverifiable result."""
    pass
