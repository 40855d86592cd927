"""
Identity Assertion Codec
========================
Encoding and decoding of the node identity header.

Wire format::

    SolrAuth: <sender-node-id> <base64(rsa_private_encrypt("<principal> <millis>"))>
"""

import base64
import binascii
import time
from typing import Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa
import structlog

from .exceptions import DecryptionFailure, MalformedAssertion, StaleAssertion
from .keys import KeyPair
from .models import IdentityAssertion

logger = structlog.get_logger(__name__)

# Configuration
HEADER = "SolrAuth"
KEY_PATH = "/admin/info/key"
MAX_VALIDITY_MS = 5000


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def encode(principal: str, timestamp_ms: int, key_pair: KeyPair) -> bytes:
    """
    Encrypt an identity assertion with the local key pair.

    Args:
        principal: Acting principal name, or "$" for the node itself
        timestamp_ms: Creation time in epoch milliseconds
        key_pair: This node's key pair

    Returns:
        Cipher bytes

    Raises:
        MalformedAssertion: The principal is empty or contains whitespace
        PayloadTooLarge: The assertion does not fit in one RSA block
    """
    if principal.split() != [principal]:
        raise MalformedAssertion(f"Principal {principal!r} must be a single non-empty token")
    payload = f"{principal} {timestamp_ms}".encode("utf-8")
    return key_pair.encrypt(payload)


def decode(cipher: bytes, public_key: rsa.RSAPublicKey) -> IdentityAssertion:
    """
    Decrypt and parse an identity assertion.

    Raises:
        DecryptionFailure: The cipher does not match the public key
        MalformedAssertion: The plaintext is not '<principal> <millis>'
    """
    plaintext = KeyPair.decrypt(cipher, public_key)

    try:
        text = plaintext.decode("utf-8").strip()
    except UnicodeDecodeError:
        raise MalformedAssertion("Deciphered data is not valid UTF-8")

    parts = text.split(" ", 1)
    if len(parts) < 2:
        raise MalformedAssertion(f"Invalid deciphered data {text!r}")

    try:
        timestamp_ms = int(parts[1])
    except ValueError:
        raise MalformedAssertion(f"Invalid timestamp in deciphered data {text!r}")

    logger.debug("pki_assertion_decoded", principal=parts[0], timestamp_ms=timestamp_ms)
    return IdentityAssertion(principal=parts[0], timestamp_ms=timestamp_ms)


def ensure_fresh(
    assertion: IdentityAssertion,
    received_ms: int,
    max_validity_ms: int = MAX_VALIDITY_MS,
) -> int:
    """
    Enforce the replay window.

    Returns:
        Age of the assertion in milliseconds

    Raises:
        StaleAssertion: If ``received_ms - timestamp > max_validity_ms``
    """
    age_ms = received_ms - assertion.timestamp_ms
    if age_ms > max_validity_ms:
        raise StaleAssertion(f"Assertion is {age_ms}ms old, limit is {max_validity_ms}ms")
    return age_ms


def decode_base64(cipher_b64: str) -> bytes:
    """Undo the header's base64 wrapping; bad base64 counts as undecipherable."""
    try:
        return base64.b64decode(cipher_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionFailure(f"Cipher is not valid base64: {e}")


def encode_header_value(
    node_id: str,
    principal: str,
    key_pair: KeyPair,
    timestamp_ms: Optional[int] = None,
) -> str:
    """Build the complete header value for an outbound request."""
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    cipher = encode(principal, timestamp_ms, key_pair)
    return f"{node_id} {base64.b64encode(cipher).decode('ascii')}"


def parse_header_value(value: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Split a header value into (sender node id, base64 cipher).

    Returns:
        The two tokens, or None if fewer than two are present
    """
    if not value:
        return None
    tokens = value.split()
    if len(tokens) < 2:
        return None
    return tokens[0], tokens[1]

