"""
Unit tests for cryptography module (volume_backup/utils/crypto.py).

Tests ArchiveCipher for encrypting/decrypting archive contents.
"""

import pytest

from volume_backup.utils.crypto import ArchiveCipher, CryptoError, MAGIC, derive_key


class TestDeriveKey:

    def test_same_inputs_same_key(self):
        salt = b'1234567890123456'
        assert derive_key('secret', salt) == derive_key('secret', salt)

    def test_different_salt_different_key(self):
        assert derive_key('secret', b'a' * 16) != derive_key('secret', b'b' * 16)

    def test_different_passphrase_different_key(self):
        salt = b'1234567890123456'
        assert derive_key('secret1', salt) != derive_key('secret2', salt)


class TestArchiveCipher:

    def test_empty_passphrase_rejected(self):
        with pytest.raises(CryptoError):
            ArchiveCipher('')

    def test_encrypt_decrypt_round_trip(self):
        cipher = ArchiveCipher('test_passphrase')
        data = b'\x1f\x8b' + bytes(range(256)) * 10

        blob = cipher.encrypt(data, 'backup.tar.gz')
        name, decrypted = cipher.decrypt(blob)

        assert name == 'backup.tar.gz'
        assert decrypted == data

    def test_encrypted_data_is_tagged(self):
        blob = ArchiveCipher('test_passphrase').encrypt(b'data', 'backup.tar.gz')

        assert blob.startswith(MAGIC)
        assert b'backup.tar.gz' in blob

    def test_each_encryption_uses_fresh_salt(self):
        cipher = ArchiveCipher('test_passphrase')

        assert cipher.encrypt(b'data', 'a') != cipher.encrypt(b'data', 'a')

    def test_wrong_passphrase_fails(self):
        blob = ArchiveCipher('right').encrypt(b'data', 'backup.tar.gz')

        with pytest.raises(CryptoError, match='wrong passphrase'):
            ArchiveCipher('wrong').decrypt(blob)

    def test_bad_header_fails(self):
        with pytest.raises(CryptoError, match='bad header'):
            ArchiveCipher('test_passphrase').decrypt(b'X' * 64)

    def test_corrupted_filename_fails(self):
        cipher = ArchiveCipher('test_passphrase')
        blob = bytearray(cipher.encrypt(b'data', 'backup.tar.gz'))
        blob[len(MAGIC) + 16 + 2] = 0xFF

        with pytest.raises(CryptoError, match='filename header'):
            cipher.decrypt(bytes(blob))

    def test_truncated_data_fails(self):
        with pytest.raises(CryptoError, match='too short'):
            ArchiveCipher('test_passphrase').decrypt(MAGIC)

    def test_unicode_filename(self):
        cipher = ArchiveCipher('test_passphrase')

        name, _ = cipher.decrypt(cipher.encrypt(b'data', 'sauvegarde-été.tar.gz'))

        assert name == 'sauvegarde-été.tar.gz'
