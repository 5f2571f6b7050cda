"""
Backup and restore manager for wrtgist.

Backup:  sysupgrade -b -> encrypt -> JSON payload -> create/update Gist
Restore: find Gist -> pick file -> download -> base64 decode -> decrypt
         -> (confirmed) sysupgrade -r

Every run works inside its own scratch directory which is removed on every
exit path. The one exception is a failed decryption during restore, where
the operator may choose to keep the encrypted artifact for inspection.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from wrtgist.backup.archiver import ArchiverError, SysupgradeArchiver
from wrtgist.backup.operator import ConsoleOperator, Operator
from wrtgist.config.credentials import Credentials
from wrtgist.config.settings import Settings
from wrtgist.crypto.cipher import (
    ArtifactCipher,
    CipherError,
    DecryptionError,
    detect_format,
    write_private_file,
)
from wrtgist.gist.client import GistClient, GistError
from wrtgist.gist.models import GistFile, GistRecord
from wrtgist.gist.selection import (
    InvalidSelectionError,
    encrypted_files,
    find_backup_records,
    select_latest_backup,
)

logger = logging.getLogger(__name__)


class RestoreError(Exception):
    """Error during restore operation."""

    pass


class NoBackupFoundError(RestoreError):
    """No backup Gist or no encrypted file in the chosen Gist."""

    pass


class MalformedRecordError(RestoreError):
    """A Gist file entry lacks the fields needed to download it."""

    pass


@dataclass
class BackupResult:
    """Result of a backup operation."""

    success: bool
    gist_id: str | None = None
    gist_url: str | None = None
    filename: str | None = None
    size_bytes: int = 0
    created: bool = False
    error: str | None = None


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool
    gist_id: str | None = None
    filename: str | None = None
    size_bytes: int = 0
    applied: bool = False
    output_path: Path | None = None
    retained_artifact: Path | None = None
    error: str | None = None


class BackupManager:
    """
    Runs the backup and restore procedures.

    All collaborators can be injected; anything left out is built from
    settings and credentials.

    Usage:
        manager = BackupManager(settings, credentials)
        result = manager.create_backup()
        result = manager.restore_backup(output_path=Path("config.tar.gz"), apply=False)
    """

    SCRATCH_PREFIX = "wrtgist-"
    PAYLOAD_FILE = "gist_payload.json"
    DOWNLOAD_FILE = "downloaded_backup.base64"
    RESTORED_FILE = "restored_config.tar.gz"

    # Multiple of 3 so chunked base64 concatenates to the same text as one pass
    BASE64_CHUNK_SIZE = 3 * 16 * 1024

    def __init__(
        self,
        settings: Settings,
        credentials: Credentials,
        client: GistClient | None = None,
        archiver: SysupgradeArchiver | None = None,
        cipher: ArtifactCipher | None = None,
        operator: Operator | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings
        self.credentials = credentials
        self.client = client or GistClient(
            credentials.token,
            api_url=settings.gist.api_url,
            timeout=settings.gist.request_timeout,
            max_retries=settings.gist.max_retries,
        )
        self.archiver = archiver or SysupgradeArchiver(settings.device.sysupgrade_command)
        self.cipher = cipher or ArtifactCipher(
            credentials.password,
            scheme=settings.encryption.scheme,
            iterations=settings.encryption.effective_iterations,
        )
        self.operator = operator or ConsoleOperator()
        self._clock = clock

    @property
    def marker(self) -> str:
        return self.settings.gist.description_marker

    @property
    def suffix(self) -> str:
        return self.settings.gist.encrypted_suffix

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def create_backup(self, gist_id: str | None = None) -> BackupResult:
        """
        Archive, encrypt and upload the router configuration.

        Args:
            gist_id: Gist to add the backup to. None uses the configured id;
                     an empty string always creates a new Gist.

        Returns:
            BackupResult with success status and Gist details
        """
        target_id = self.credentials.gist_id if gist_id is None else gist_id

        now = self._clock()
        archive_name = f"{self.settings.gist.filename_prefix}_{now:%Y%m%d_%H%M%S}.tar.gz"
        encrypted_name = archive_name + self.suffix
        description = f"{self.marker} ({now:%Y-%m-%d %H:%M:%S})"

        scratch: Path | None = None
        try:
            scratch = self._make_scratch_dir()
            archive_path = scratch / archive_name
            encrypted_path = scratch / encrypted_name
            payload_path = scratch / self.PAYLOAD_FILE

            logger.info(f"Creating configuration archive {archive_path}")
            self.archiver.create(archive_path)

            logger.info(f"Encrypting archive ({self.cipher.scheme})")
            try:
                size_bytes = self.cipher.encrypt_file(archive_path, encrypted_path)
            finally:
                # Plaintext is not needed past this point, whatever happened
                archive_path.unlink(missing_ok=True)

            self._write_payload(payload_path, encrypted_path, encrypted_name, description)

            if target_id:
                logger.info(f"Adding {encrypted_name} to Gist {target_id}")
                response = self.client.update_gist(target_id, payload_path)
            else:
                logger.info(f"Creating new private Gist for {encrypted_name}")
                response = self.client.create_gist(payload_path)

            gist_url = response.get("html_url")
            if not gist_url:
                logger.error(
                    "Gist response has no html_url, upload may have failed. "
                    f"Full response: {json.dumps(response)}"
                )
                return BackupResult(
                    success=False,
                    gist_id=response.get("id") or target_id or None,
                    filename=encrypted_name,
                    error="Gist upload may have failed: response contains no html_url",
                )

            logger.info(f"Backup uploaded: {gist_url}")
            return BackupResult(
                success=True,
                gist_id=response.get("id") or target_id,
                gist_url=gist_url,
                filename=encrypted_name,
                size_bytes=size_bytes,
                created=not target_id,
            )

        except (ArchiverError, CipherError, GistError, OSError) as e:
            logger.error(f"Backup failed: {e}")
            return BackupResult(success=False, filename=encrypted_name, error=str(e))
        except Exception as e:
            logger.exception("Backup failed")
            return BackupResult(success=False, filename=encrypted_name, error=str(e))
        finally:
            if scratch is not None:
                self._remove_scratch(scratch)

    def _write_payload(
        self,
        payload_path: Path,
        encrypted_path: Path,
        filename: str,
        description: str,
    ) -> None:
        """
        Write the Gist request body, streaming the artifact as base64.

        Produces {"description": ..., "public": false,
                  "files": {filename: {"content": "<base64>"}}}
        """
        head = (
            '{"description": ' + json.dumps(description)
            + ', "public": false, "files": {'
            + json.dumps(filename) + ': {"content": "'
        )
        with open(payload_path, "wb") as out, open(encrypted_path, "rb") as src:
            out.write(head.encode("ascii"))
            while chunk := src.read(self.BASE64_CHUNK_SIZE):
                out.write(base64.b64encode(chunk))
            out.write(b'"}}}')

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def list_backups(self) -> list[GistRecord]:
        """
        List backup Gists, newest first.

        Returns:
            Records passing the discovery filter.
        """
        records = find_backup_records(self.client.list_gists(), self.marker, self.suffix)
        return sorted(
            records,
            key=lambda r: r.created_at.timestamp() if r.created_at else float("-inf"),
            reverse=True,
        )

    def restore_backup(
        self,
        gist_id: str | None = None,
        output_path: Path | None = None,
        apply: bool = True,
    ) -> RestoreResult:
        """
        Download, decrypt and optionally apply a backup.

        Args:
            gist_id: Gist to restore from. None uses the configured id; an
                     empty string discovers the newest backup Gist.
            output_path: Where to keep a copy of the decrypted archive.
            apply: Offer to run sysupgrade -r (always asks for confirmation).

        Returns:
            RestoreResult with success status and restore details
        """
        target_id = self.credentials.gist_id if gist_id is None else gist_id

        try:
            record = self._resolve_record(target_id)
            gist_file = self._resolve_file(record)
        except (RestoreError, GistError, InvalidSelectionError) as e:
            logger.error(f"Restore failed: {e}")
            return RestoreResult(success=False, gist_id=target_id or None, error=str(e))

        result = RestoreResult(success=False, gist_id=record.id, filename=gist_file.filename)
        retained: Path | None = None
        scratch: Path | None = None

        try:
            scratch = self._make_scratch_dir()
            downloaded = scratch / self.DOWNLOAD_FILE
            encrypted = scratch / (Path(gist_file.filename).name or "backup" + self.suffix)
            restored = scratch / self.RESTORED_FILE

            logger.info(f"Downloading {gist_file.filename} from Gist {record.id}")
            if not gist_file.raw_url:
                raise MalformedRecordError(f"File {gist_file.filename} has no raw_url")
            self.client.download_raw(gist_file.raw_url, downloaded)

            write_private_file(encrypted, self._load_artifact(downloaded))
            downloaded.unlink()

            logger.info("Decrypting backup")
            try:
                result.size_bytes = self.cipher.decrypt_file(encrypted, restored)
            except DecryptionError as e:
                logger.error(f"Decryption failed: {e}")
                result.error = f"Decryption failed: {e}"
                if self.operator.confirm(
                    f"Keep the encrypted artifact at {encrypted} for inspection?",
                    default=True,
                ):
                    retained = encrypted
                    result.retained_artifact = encrypted
                return result

            encrypted.unlink()

            if output_path is not None:
                output_path = Path(output_path)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(restored, output_path)
                result.output_path = output_path
                logger.info(f"Decrypted archive saved to {output_path}")

            if apply:
                if self.operator.confirm(
                    "Apply this configuration with sysupgrade -r? "
                    "The router will REBOOT and network connectivity will drop."
                ):
                    self.archiver.restore(restored)
                    result.applied = True
                    logger.info("Configuration restored, router is rebooting")
                else:
                    logger.info("Restore not applied (not confirmed)")

            result.success = True
            return result

        except (RestoreError, GistError, ArchiverError, OSError) as e:
            logger.error(f"Restore failed: {e}")
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception("Restore failed")
            result.error = str(e)
            return result
        finally:
            if scratch is not None:
                self._remove_scratch(scratch, keep=retained)

    def decrypt_artifact(self, source: Path, destination: Path) -> int:
        """
        Decrypt a locally stored artifact (base64 text or binary).

        Returns:
            Size of the decrypted archive in bytes.

        Raises:
            RestoreError: If the file cannot be read or decoded.
            DecryptionError: If decryption fails.
        """
        artifact = self._load_artifact(Path(source))
        plaintext = self.cipher.decrypt(artifact)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        write_private_file(destination, plaintext)
        return len(plaintext)

    def _resolve_record(self, target_id: str) -> GistRecord:
        if target_id:
            logger.info(f"Restoring from Gist {target_id}")
            return self.client.get_gist(target_id)

        logger.info("No Gist id given, looking for the latest backup Gist")
        latest = select_latest_backup(self.client.list_gists(), self.marker, self.suffix)
        if latest is None:
            raise NoBackupFoundError(
                "No matching private backup Gist found. Make sure a backup has "
                "run successfully and the token has the 'gist' scope."
            )
        logger.info(f"Latest backup Gist: {latest.id} (created {latest.created_at})")
        # Listings may omit file details, fetch the full record
        return self.client.get_gist(latest.id)

    def _resolve_file(self, record: GistRecord) -> GistFile:
        candidates = encrypted_files(record, self.suffix)
        if not candidates:
            raise NoBackupFoundError(f"No valid backup files found in Gist {record.id}")

        if len(candidates) == 1:
            chosen = candidates[0]
        else:
            index = self.operator.choose(
                f"Gist {record.id} holds {len(candidates)} backups:",
                [f.filename for f in candidates],
            )
            chosen = candidates[index]

        if not chosen.raw_url:
            raise MalformedRecordError(
                f"File {chosen.filename} in Gist {record.id} has no raw_url"
            )
        return chosen

    def _load_artifact(self, path: Path) -> bytes:
        """Read an artifact, decoding base64 unless it is already binary."""
        try:
            data = path.read_bytes()
        except OSError as e:
            raise RestoreError(f"Cannot read {path}: {e}") from e

        if detect_format(data) is not None:
            return data

        text = b"".join(data.split())
        if not text:
            raise RestoreError(f"Downloaded backup {path.name} is empty")
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise RestoreError(f"Failed to decode base64 content: {e}") from e

    # ------------------------------------------------------------------
    # Scratch directory
    # ------------------------------------------------------------------

    def _make_scratch_dir(self) -> Path:
        root = Path(self.settings.scratch_dir)
        root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=self.SCRATCH_PREFIX, dir=root))
        logger.debug(f"Scratch directory: {path}")
        return path

    def _remove_scratch(self, scratch: Path, keep: Path | None = None) -> None:
        """Remove the scratch directory, or everything in it except keep."""
        if keep is None:
            shutil.rmtree(scratch, ignore_errors=True)
            if scratch.exists():
                logger.warning(f"Could not fully remove scratch directory {scratch}")
            return

        for entry in scratch.iterdir():
            if entry == keep:
                continue
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
        logger.info(f"Encrypted artifact kept at {keep}")
