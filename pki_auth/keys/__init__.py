"""
Node Keys
=========
RSA key pair and public key encoding.
"""

from .keypair import KeyPair, DEFAULT_KEY_SIZE
from .encoding import serialize_public_key, deserialize_public_key

__all__ = [
    "KeyPair",
    "DEFAULT_KEY_SIZE",
    "serialize_public_key",
    "deserialize_public_key",
]
