"""
Node Key Pair
=============
The local node's RSA key pair.

Assertions are encrypted with the *private* key using PKCS#1 v1.5 block
type 1 padding, so any holder of the public key can recover them. This is
the same transform as an RSA signature without a DigestInfo wrapper, which
lets the receiving side use ``recover_data_from_signature`` directly.
"""

import math
import secrets
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import padding, rsa
import structlog

from ..exceptions import DecryptionFailure, EncryptionFailure, KeyGenerationFailure, PayloadTooLarge
from .encoding import serialize_public_key

logger = structlog.get_logger(__name__)

DEFAULT_KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537

# 0x00 0x01 PS 0x00, with PS at least 8 bytes
PKCS1_OVERHEAD = 11


def _pad_type1(message: bytes, key_bytes: int) -> bytes:
    """EMSA-PKCS1-v1_5 style block type 1 padding over raw bytes."""
    ps_len = key_bytes - 3 - len(message)
    return b"\x00\x01" + (b"\xff" * ps_len) + b"\x00" + message


class KeyPair:
    """
    RSA key pair owned by this node for its whole lifetime.

    Only the public half ever leaves the process.
    """

    def __init__(
        self,
        key_size: int = DEFAULT_KEY_SIZE,
        private_key: Optional[rsa.RSAPrivateKey] = None,
    ):
        if private_key is None:
            try:
                private_key = rsa.generate_private_key(
                    public_exponent=PUBLIC_EXPONENT, key_size=key_size
                )
            except Exception as e:
                raise KeyGenerationFailure(f"Unable to generate RSA key pair: {e}")

        self._private_key = private_key
        self._public_key = private_key.public_key()
        self._numbers = private_key.private_numbers()
        self._public_key_str = serialize_public_key(self._public_key)
        logger.info("pki_key_pair_ready", key_size=private_key.key_size)

    @classmethod
    def from_private_key(cls, private_key: rsa.RSAPrivateKey) -> "KeyPair":
        return cls(private_key=private_key)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self._public_key

    @property
    def public_key_str(self) -> str:
        return self._public_key_str

    def public_key_export_string(self) -> str:
        """Public key as base64 DER, as served by the key-exchange endpoint."""
        return self._public_key_str

    @property
    def key_bytes(self) -> int:
        return (self._private_key.key_size + 7) // 8

    @property
    def max_payload(self) -> int:
        return self.key_bytes - PKCS1_OVERHEAD

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt a short payload with the private key.

        Args:
            plaintext: Bytes to encrypt, at most ``max_payload`` long

        Returns:
            Cipher bytes, exactly ``key_bytes`` long

        Raises:
            PayloadTooLarge: If plaintext does not fit in one block
            EncryptionFailure: If the result does not verify under the public key
        """
        if len(plaintext) > self.max_payload:
            raise PayloadTooLarge(
                f"Payload of {len(plaintext)} bytes exceeds {self.max_payload} byte limit"
            )

        block = int.from_bytes(_pad_type1(plaintext, self.key_bytes), "big")

        n = self._numbers.public_numbers.n
        e = self._numbers.public_numbers.e
        r = self._blinding_factor(n)
        blinded = (block * pow(r, e, n)) % n
        cipher = (self._private_op(blinded) * pow(r, -1, n)) % n

        if pow(cipher, e, n) != block:
            logger.error("pki_private_op_mismatch", key_size=self._private_key.key_size)
            raise EncryptionFailure("RSA private operation failed verification")

        return cipher.to_bytes(self.key_bytes, "big")

    @staticmethod
    def _blinding_factor(n: int) -> int:
        while True:
            r = secrets.randbelow(n - 2) + 2
            if math.gcd(r, n) == 1:
                return r

    def _private_op(self, value: int) -> int:
        """Raw RSA private operation via CRT."""
        numbers = self._numbers
        p, q = numbers.p, numbers.q
        m1 = pow(value, numbers.dmp1, p)
        m2 = pow(value, numbers.dmq1, q)
        h = (numbers.iqmp * (m1 - m2)) % p
        return (m2 + h * q) % numbers.public_numbers.n

    @staticmethod
    def decrypt(cipher: bytes, public_key: rsa.RSAPublicKey) -> bytes:
        """
        Recover a payload encrypted by a peer's private key.

        Raises:
            DecryptionFailure: Wrong key, corrupted or tampered cipher
        """
        if public_key is None:
            raise DecryptionFailure("No public key available")
        try:
            return public_key.recover_data_from_signature(
                cipher, padding.PKCS1v15(), None
            )
        except Exception as e:
            raise DecryptionFailure(f"Decryption failed, key must be wrong: {e!r}")
