"""
Password-based encryption of configuration archives.

Two artifact formats are supported, selected by the configured scheme:

chacha20-poly1305 (default):
    Self-describing, authenticated format. Layout::

        b"WRTGIST" | version (1 byte) | iterations (uint32 BE)
                   | salt (16 bytes) | nonce (12 bytes) | ciphertext+tag

    The key is derived with PBKDF2-HMAC-SHA256 from the password and the
    per-artifact salt. The header is bound as associated data, so tampering
    or a wrong password fails with DecryptionError instead of yielding
    garbage.

openssl-chacha20-pbkdf2:
    Byte-compatible with ``openssl enc -chacha20 -pbkdf2 -iter N -salt``.
    Layout is ``b"Salted__" | salt (8 bytes) | ciphertext``; key and IV come
    from PBKDF2-HMAC-SHA256. The format records neither the KDF nor the
    iteration count and carries no MAC, so these artifacts are only read
    when this scheme is configured, and a decrypted result must start with
    the gzip signature to be accepted.

Artifacts made with a bare password-as-key (``openssl enc -k`` without
-pbkdf2) are indistinguishable from the OpenSSL format by their header and
are not supported.
"""

from __future__ import annotations

import logging
import os
import secrets
import struct
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from wrtgist.config.settings import (
    MIN_ITERATIONS,
    SCHEME_CHACHA20_POLY1305,
    SCHEME_DEFAULT_ITERATIONS,
    SCHEME_OPENSSL_CHACHA20,
)

logger = logging.getLogger(__name__)

MAGIC = b"WRTGIST"
FORMAT_VERSION = 1
SALT_LENGTH = 16
NONCE_LENGTH = 12
KEY_LENGTH = 32
HEADER = struct.Struct(f">{len(MAGIC)}sBI{SALT_LENGTH}s{NONCE_LENGTH}s")

OPENSSL_MAGIC = b"Salted__"
OPENSSL_SALT_LENGTH = 8
OPENSSL_IV_LENGTH = 16
GZIP_MAGIC = b"\x1f\x8b"

FORMAT_NATIVE = "wrtgist"
FORMAT_OPENSSL = "openssl"


class CipherError(Exception):
    """Base exception for cipher errors."""

    pass


class EncryptionError(CipherError):
    """Raised when an archive cannot be encrypted."""

    pass


class DecryptionError(CipherError):
    """Raised when an artifact cannot be decrypted (wrong password, corrupt data)."""

    pass


class UnsupportedArtifactError(DecryptionError):
    """Raised when the artifact format or key-derivation variant is not usable."""

    pass


def detect_format(data: bytes) -> str | None:
    """
    Identify an artifact by its leading bytes.

    Returns:
        FORMAT_NATIVE, FORMAT_OPENSSL, or None for unknown content.
    """
    if data.startswith(MAGIC):
        return FORMAT_NATIVE
    if data.startswith(OPENSSL_MAGIC):
        return FORMAT_OPENSSL
    return None


class ArtifactCipher:
    """
    Encrypts and decrypts configuration archives with a password.

    Usage:
        cipher = ArtifactCipher("correct horse battery staple")
        cipher.encrypt_file(archive_path, archive_path.with_name(name + ".enc"))
        cipher.decrypt_file(encrypted_path, restored_path)

    Attributes:
        scheme: Scheme used for new artifacts (and for reading OpenSSL ones).
        iterations: PBKDF2 iteration count for new artifacts.
    """

    def __init__(
        self,
        password: str,
        scheme: str = SCHEME_CHACHA20_POLY1305,
        iterations: int | None = None,
    ) -> None:
        if not password:
            raise ValueError("Encryption password must not be empty")
        if scheme not in SCHEME_DEFAULT_ITERATIONS:
            raise ValueError(f"Unknown encryption scheme: {scheme}")

        self._password = password.encode("utf-8")
        self.scheme = scheme
        self.iterations = iterations or SCHEME_DEFAULT_ITERATIONS[scheme]
        if self.iterations < MIN_ITERATIONS:
            raise ValueError(f"iterations must be at least {MIN_ITERATIONS}")

    def __repr__(self) -> str:
        return f"ArtifactCipher(scheme={self.scheme!r}, iterations={self.iterations})"

    # ------------------------------------------------------------------
    # Bytes API
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt plaintext into an artifact of the configured scheme.

        Raises:
            EncryptionError: If the cipher backend fails.
        """
        try:
            if self.scheme == SCHEME_OPENSSL_CHACHA20:
                return self._encrypt_openssl(plaintext)
            return self._encrypt_native(plaintext)
        except CipherError:
            raise
        except Exception as e:
            raise EncryptionError(f"Encryption failed: {e}") from e

    def decrypt(self, artifact: bytes) -> bytes:
        """
        Decrypt an artifact.

        Native artifacts are self-describing and always readable. OpenSSL
        artifacts are only read when the OpenSSL scheme is configured.

        Raises:
            UnsupportedArtifactError: If the format cannot be identified or the
                                      OpenSSL format was not configured.
            DecryptionError: If the password is wrong or the data is corrupt.
        """
        artifact_format = detect_format(artifact)

        if artifact_format == FORMAT_NATIVE:
            return self._decrypt_native(artifact)

        if artifact_format == FORMAT_OPENSSL:
            if self.scheme != SCHEME_OPENSSL_CHACHA20:
                raise UnsupportedArtifactError(
                    "Artifact uses the OpenSSL 'Salted__' format, which does not "
                    "record its key-derivation parameters. Set encryption.scheme "
                    f"to '{SCHEME_OPENSSL_CHACHA20}' (and the matching iterations) "
                    "to read it."
                )
            return self._decrypt_openssl(artifact)

        raise UnsupportedArtifactError(
            "Unrecognised artifact format (neither a wrtgist nor an OpenSSL "
            "salted artifact)"
        )

    # ------------------------------------------------------------------
    # File API
    # ------------------------------------------------------------------

    def encrypt_file(self, source: Path, destination: Path) -> int:
        """
        Encrypt a file into destination.

        Returns:
            Size of the written artifact in bytes.

        Raises:
            EncryptionError: If reading, encrypting or writing fails. No
                             partial destination file is left behind.
        """
        try:
            plaintext = Path(source).read_bytes()
        except OSError as e:
            raise EncryptionError(f"Cannot read archive {source}: {e}") from e

        artifact = self.encrypt(plaintext)
        try:
            write_private_file(Path(destination), artifact)
        except OSError as e:
            raise EncryptionError(f"Cannot write artifact {destination}: {e}") from e

        logger.debug(
            f"Encrypted {source} -> {destination} "
            f"({len(plaintext)} -> {len(artifact)} bytes, {self.scheme})"
        )
        return len(artifact)

    def decrypt_file(self, source: Path, destination: Path) -> int:
        """
        Decrypt an artifact file into destination.

        Returns:
            Size of the written plaintext in bytes.

        Raises:
            DecryptionError: If decryption fails or the files are unusable.
        """
        try:
            artifact = Path(source).read_bytes()
        except OSError as e:
            raise DecryptionError(f"Cannot read artifact {source}: {e}") from e

        plaintext = self.decrypt(artifact)
        try:
            write_private_file(Path(destination), plaintext)
        except OSError as e:
            raise DecryptionError(f"Cannot write archive {destination}: {e}") from e

        logger.debug(f"Decrypted {source} -> {destination} ({len(plaintext)} bytes)")
        return len(plaintext)

    # ------------------------------------------------------------------
    # Scheme implementations
    # ------------------------------------------------------------------

    def _derive(self, salt: bytes, iterations: int, length: int) -> bytes:
        """Derive key material from the password with PBKDF2-HMAC-SHA256."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(self._password)

    def _encrypt_native(self, plaintext: bytes) -> bytes:
        salt = secrets.token_bytes(SALT_LENGTH)
        nonce = secrets.token_bytes(NONCE_LENGTH)
        header = HEADER.pack(MAGIC, FORMAT_VERSION, self.iterations, salt, nonce)
        key = self._derive(salt, self.iterations, KEY_LENGTH)
        return header + ChaCha20Poly1305(key).encrypt(nonce, plaintext, header)

    def _decrypt_native(self, artifact: bytes) -> bytes:
        if len(artifact) < HEADER.size:
            raise DecryptionError("Artifact is truncated (incomplete header)")

        header = artifact[: HEADER.size]
        _, version, iterations, salt, nonce = HEADER.unpack(header)

        if version != FORMAT_VERSION:
            raise UnsupportedArtifactError(
                f"Unsupported artifact format version: {version}"
            )
        if iterations < MIN_ITERATIONS:
            raise UnsupportedArtifactError(
                f"Artifact declares too few iterations: {iterations}"
            )

        key = self._derive(salt, iterations, KEY_LENGTH)
        try:
            return ChaCha20Poly1305(key).decrypt(nonce, artifact[HEADER.size :], header)
        except InvalidTag as e:
            raise DecryptionError(
                "Decryption failed: wrong password or corrupted artifact"
            ) from e

    def _encrypt_openssl(self, plaintext: bytes) -> bytes:
        salt = secrets.token_bytes(OPENSSL_SALT_LENGTH)
        encryptor = self._openssl_cipher(salt).encryptor()
        return OPENSSL_MAGIC + salt + encryptor.update(plaintext) + encryptor.finalize()

    def _decrypt_openssl(self, artifact: bytes) -> bytes:
        offset = len(OPENSSL_MAGIC) + OPENSSL_SALT_LENGTH
        if len(artifact) < offset:
            raise DecryptionError("Artifact is truncated (incomplete salt header)")

        salt = artifact[len(OPENSSL_MAGIC) : offset]
        decryptor = self._openssl_cipher(salt).decryptor()
        plaintext = decryptor.update(artifact[offset:]) + decryptor.finalize()

        # No MAC in this format; the archive is always gzip-compressed
        if not plaintext.startswith(GZIP_MAGIC):
            raise DecryptionError(
                "Decryption produced no gzip archive: wrong password or "
                "iteration count mismatch"
            )
        return plaintext

    def _openssl_cipher(self, salt: bytes) -> Cipher:
        # OpenSSL's ChaCha20 IV is counter || nonce, the layout cryptography expects
        material = self._derive(salt, self.iterations, KEY_LENGTH + OPENSSL_IV_LENGTH)
        key, iv = material[:KEY_LENGTH], material[KEY_LENGTH:]
        return Cipher(algorithms.ChaCha20(key, iv), mode=None)


def write_private_file(path: Path, data: bytes) -> None:
    """
    Write data to file with owner-only permissions.

    Uses atomic write (write to temp, then rename) to prevent
    partial writes from leaving a truncated file behind.
    """
    temp_path = path.with_name(path.name + ".tmp")

    try:
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        temp_path.replace(path)
    except Exception:
        # Clean up temp file on error
        if temp_path.exists():
            temp_path.unlink()
        raise
