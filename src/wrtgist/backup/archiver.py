"""
Device-side configuration archiving via OpenWrt's sysupgrade.

    sysupgrade -b <path>   writes the configuration archive (.tar.gz)
    sysupgrade -r <path>   restores an archive and reboots the router
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

# Packing the overlay takes a few seconds on slow flash
ARCHIVE_TIMEOUT_SECONDS = 300


class ArchiverError(Exception):
    """Raised when the device archive command fails or is unavailable."""

    pass


class SysupgradeArchiver:
    """
    Creates and restores configuration archives with sysupgrade.

    Attributes:
        command: sysupgrade executable name or path.
    """

    def __init__(self, command: str = "sysupgrade") -> None:
        self.command = command

    def is_available(self) -> bool:
        """Check whether the sysupgrade command can be found."""
        return shutil.which(self.command) is not None

    def create(self, path: Path) -> Path:
        """
        Write the configuration archive to path.

        Raises:
            ArchiverError: If the command is missing, fails, or produced no file.
        """
        self._run("-b", path)
        if not Path(path).is_file():
            raise ArchiverError(f"{self.command} reported success but wrote no archive at {path}")
        return Path(path)

    def restore(self, path: Path) -> None:
        """
        Apply an archive to the device. The router reboots afterwards.

        Raises:
            ArchiverError: If the command is missing or fails.
        """
        self._run("-r", path)

    def _run(self, flag: str, path: Path) -> None:
        argv = [self.command, flag, str(path)]
        logger.info(f"Running: {' '.join(argv)}")

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=ARCHIVE_TIMEOUT_SECONDS,
            )
        except FileNotFoundError as e:
            raise ArchiverError(f"Command not found: {self.command}") from e
        except (subprocess.SubprocessError, OSError) as e:
            raise ArchiverError(f"{self.command} {flag} failed: {e}") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise ArchiverError(
                f"{self.command} {flag} exited with status {result.returncode}"
                + (f": {detail}" if detail else "")
            )
