"""
Public Key Encoding
===================
Transport-safe string form of RSA public keys.

Keys travel as base64 of the DER ``SubjectPublicKeyInfo`` structure (the
X.509 public key encoding). PEM text is accepted on input as well.
"""

import base64
import binascii

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..exceptions import InvalidPublicKey

PEM_MARKER = "-----BEGIN"


def serialize_public_key(public_key: rsa.RSAPublicKey) -> str:
    """
    Encode a public key for the key-exchange endpoint.

    Args:
        public_key: RSA public key

    Returns:
        Base64 of the DER SubjectPublicKeyInfo bytes
    """
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


def deserialize_public_key(text: str) -> rsa.RSAPublicKey:
    """
    Decode a public key received from a peer.

    Args:
        text: Base64 DER or PEM encoded public key

    Returns:
        RSA public key

    Raises:
        InvalidPublicKey: If the text is not an RSA public key
    """
    if not text or not text.strip():
        raise InvalidPublicKey("Empty public key")

    try:
        if PEM_MARKER in text:
            key = serialization.load_pem_public_key(text.encode("ascii"))
        else:
            der = base64.b64decode("".join(text.split()), validate=True)
            key = serialization.load_der_public_key(der)
    except (ValueError, binascii.Error, UnicodeEncodeError, UnsupportedAlgorithm) as e:
        raise InvalidPublicKey(f"Could not decode public key: {e}")

    if not isinstance(key, rsa.RSAPublicKey):
        raise InvalidPublicKey(f"Expected an RSA public key, got {type(key).__name__}")
    return key
