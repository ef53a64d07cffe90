"""
Passphrase based encryption for backup archives.
Uses Fernet symmetric encryption with a key derived from the passphrase.

Encrypted archives are stored in a small tagged container so the original
filename travels with the data:

    MAGIC (8 bytes) | salt (16 bytes) | name length (2 bytes, big endian)
    | name (utf-8) | Fernet token
"""

import base64
import os
import struct
from typing import Tuple

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


MAGIC = b'VBKENC01'
SALT_SIZE = 16
KDF_ITERATIONS = 480000  # OWASP recommended iterations for 2023+

_HEADER = struct.Struct('>8s16sH')


class CryptoError(Exception):
    """Raised when data cannot be encrypted or decrypted."""
    pass


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """
    Derive a Fernet key from a passphrase.

    Args:
        passphrase: User supplied passphrase
        salt: Random salt stored alongside the ciphertext

    Returns:
        URL-safe base64 encoded 32 byte key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))


class ArchiveCipher:
    """Encrypts and decrypts archive contents with a passphrase."""

    def __init__(self, passphrase: str):
        if not passphrase:
            raise CryptoError("Passphrase must not be empty")
        self._passphrase = passphrase

    def encrypt(self, data: bytes, filename: str) -> bytes:
        """
        Encrypt data and tag it with the original filename.

        Returns:
            The encrypted container as bytes
        """
        name = filename.encode('utf-8')
        if len(name) > 0xFFFF:
            raise CryptoError(f"Filename too long to embed: {filename[:40]}...")

        salt = os.urandom(SALT_SIZE)
        token = Fernet(derive_key(self._passphrase, salt)).encrypt(data)
        return _HEADER.pack(MAGIC, salt, len(name)) + name + token

    def decrypt(self, blob: bytes) -> Tuple[str, bytes]:
        """
        Decrypt a container produced by encrypt().

        Returns:
            Tuple of (original filename, plaintext data)

        Raises:
            CryptoError: If the data is not an encrypted archive or the
                passphrase is wrong
        """
        if len(blob) < _HEADER.size:
            raise CryptoError("Data too short to be an encrypted archive")

        magic, salt, name_length = _HEADER.unpack_from(blob)
        if magic != MAGIC:
            raise CryptoError("Not an encrypted archive (bad header)")

        offset = _HEADER.size
        try:
            name = blob[offset:offset + name_length].decode('utf-8')
        except UnicodeDecodeError as e:
            raise CryptoError("Not an encrypted archive (bad filename header)") from e
        token = blob[offset + name_length:]

        try:
            data = Fernet(derive_key(self._passphrase, salt)).decrypt(token)
        except InvalidToken:
            raise CryptoError("Decryption failed: wrong passphrase or corrupted data")

        return name, data
