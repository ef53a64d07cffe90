"""
Optional encryption of the backup artifact.

The encrypted file is written next to the plaintext archive; the plaintext is
only removed once the encrypted copy is completely on disk.
"""

import logging
import os
from typing import Tuple

from ..errors import EncryptionError
from ..utils.crypto import ArchiveCipher, CryptoError
from .compression import BackupArtifact


ENCRYPTED_EXTENSION = 'enc'

logger = logging.getLogger(__name__)


def encrypt_artifact(artifact: BackupArtifact, passphrase: str) -> BackupArtifact:
    """
    Encrypt the artifact with the given passphrase.

    Args:
        artifact: Plaintext backup artifact
        passphrase: Passphrase to derive the key from; empty disables encryption

    Returns:
        The encrypted artifact, or the unchanged artifact if no passphrase is set

    Raises:
        EncryptionError: If reading, encrypting or writing fails. The
            plaintext archive is left in place in that case.
    """
    if not passphrase:
        return artifact

    encrypted_path = f"{artifact.path}.{ENCRYPTED_EXTENSION}"

    try:
        with open(artifact.path, 'rb') as f:
            plaintext = f.read()
    except OSError as e:
        raise EncryptionError(f"error reading unencrypted backup file: {e}") from e

    try:
        blob = ArchiveCipher(passphrase).encrypt(plaintext, artifact.name)
    except CryptoError as e:
        raise EncryptionError(f"error encrypting backup file: {e}") from e

    try:
        with open(encrypted_path, 'wb') as f:
            f.write(blob)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        if os.path.exists(encrypted_path):
            try:
                os.remove(encrypted_path)
            except OSError:
                logger.warning(f"Could not remove partial encrypted file {encrypted_path}")
        raise EncryptionError(f"error writing encrypted version of backup: {e}") from e

    try:
        os.remove(artifact.path)
    except OSError as e:
        # Keep a single artifact on disk: the plaintext one.
        try:
            os.remove(encrypted_path)
        except OSError:
            logger.warning(f"Could not remove encrypted file {encrypted_path}")
        raise EncryptionError(f"error removing unencrypted backup: {e}") from e

    return BackupArtifact(path=encrypted_path)


def decrypt_file(path: str, passphrase: str) -> Tuple[str, bytes]:
    """
    Decrypt an encrypted backup file.

    Returns:
        Tuple of (original filename, archive bytes)

    Raises:
        EncryptionError: If the file cannot be read or decrypted
    """
    try:
        with open(path, 'rb') as f:
            blob = f.read()
    except OSError as e:
        raise EncryptionError(f"error reading encrypted backup file: {e}") from e

    try:
        return ArchiveCipher(passphrase).decrypt(blob)
    except CryptoError as e:
        raise EncryptionError(str(e)) from e
