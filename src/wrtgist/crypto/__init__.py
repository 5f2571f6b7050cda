"""
Encryption of configuration archives.

Usage:
    from wrtgist.crypto import ArtifactCipher

    cipher = ArtifactCipher(password)
    cipher.encrypt_file(archive_path, encrypted_path)
"""

from wrtgist.crypto.cipher import (
    ArtifactCipher,
    CipherError,
    DecryptionError,
    EncryptionError,
    UnsupportedArtifactError,
    detect_format,
    write_private_file,
)

__all__ = [
    "ArtifactCipher",
    "CipherError",
    "EncryptionError",
    "DecryptionError",
    "UnsupportedArtifactError",
    "detect_format",
    "write_private_file",
]
