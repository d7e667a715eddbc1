"""
AES-256-GCM Authenticated Encryption
====================================

Encrypts cliplet text under a derived 256-bit key.

Blob layout (printable, interoperable):

    base64( nonce[12] || ciphertext || tag[16] )

Security Properties:
    - 256-bit key (128-bit security level)
    - 96-bit random nonce per call (NIST SP 800-38D)
    - 128-bit authentication tag
    - Tag is verified before any plaintext is returned

WARNING:
    - Never reuse (key, nonce) pairs
    - DecryptionError means wrong key, corruption or truncation
"""

from __future__ import annotations

import base64
import binascii
import secrets
from typing import Final, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from clipvault.security.constants import (
    KEY_LENGTH_BYTES,
    NONCE_LENGTH_BYTES,
    TAG_LENGTH_BYTES,
)

AES_KEY_SIZE: Final[int] = KEY_LENGTH_BYTES
AES_NONCE_SIZE: Final[int] = NONCE_LENGTH_BYTES
AES_TAG_SIZE: Final[int] = TAG_LENGTH_BYTES


class DecryptionError(Exception):
    """Raised when a blob cannot be authenticated and decrypted."""
    pass


class AesGcmCipher:
    """
    AES-256-GCM text cipher producing self-contained base64 blobs.

    Usage:
        cipher = AesGcmCipher()
        blob = cipher.encrypt_text("hello", key)
        assert cipher.decrypt_text(blob, key) == "hello"

    The cipher holds no state; the key is supplied on every call.
    """

    __slots__ = ()

    @staticmethod
    def generate_nonce() -> bytes:
        """
        Generate a cryptographically secure random nonce.

        Returns:
            12 bytes of cryptographic random data
        """
        return secrets.token_bytes(AES_NONCE_SIZE)

    @staticmethod
    def _check_key(key: bytes) -> None:
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")

    def encrypt(self, plaintext: bytes, key: bytes, aad: Optional[bytes] = None) -> bytes:
        """
        Encrypt raw bytes and return ``nonce || ciphertext || tag``.

        Args:
            plaintext: Data to encrypt (can be empty)
            key: 32-byte key
            aad: Additional Authenticated Data

        Raises:
            ValueError: If the key has the wrong size
        """
        self._check_key(key)
        nonce = self.generate_nonce()
        return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)

    def decrypt(self, payload: bytes, key: bytes, aad: Optional[bytes] = None) -> bytes:
        """
        Split ``nonce || ciphertext || tag`` and authenticate-decrypt it.

        Raises:
            ValueError: If the key has the wrong size
            DecryptionError: If the payload is truncated or the tag fails
        """
        self._check_key(key)
        if len(payload) < AES_NONCE_SIZE + AES_TAG_SIZE:
            raise DecryptionError("Ciphertext too short (missing nonce or authentication tag)")

        nonce, ciphertext = payload[:AES_NONCE_SIZE], payload[AES_NONCE_SIZE:]
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, aad)
        except InvalidTag as e:
            raise DecryptionError("Authentication tag verification failed") from e

    def encrypt_text(self, plaintext: str, key: bytes) -> str:
        """Encrypt a UTF-8 string into a printable base64 blob."""
        payload = self.encrypt(plaintext.encode("utf-8"), key)
        return base64.b64encode(payload).decode("ascii")

    def decrypt_text(self, blob: str, key: bytes) -> str:
        """
        Decrypt a base64 blob produced by :meth:`encrypt_text`.

        Raises:
            DecryptionError: If the blob is not valid base64, is truncated,
                fails authentication, or does not hold UTF-8 text
        """
        try:
            payload = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e

        plaintext = self.decrypt(payload, key)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not UTF-8 text") from e
