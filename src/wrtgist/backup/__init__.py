"""
Backup and restore procedures for wrtgist.

Usage:
    from wrtgist.backup import BackupManager

    # Archive, encrypt and upload
    manager = BackupManager(settings, credentials)
    result = manager.create_backup()

    # Find the newest backup, decrypt it and offer to apply it
    result = manager.restore_backup(gist_id="")
"""

from wrtgist.backup.archiver import ArchiverError, SysupgradeArchiver
from wrtgist.backup.manager import (
    BackupManager,
    BackupResult,
    MalformedRecordError,
    NoBackupFoundError,
    RestoreError,
    RestoreResult,
)
from wrtgist.backup.operator import ConsoleOperator, Operator

__all__ = [
    "BackupManager",
    "BackupResult",
    "RestoreResult",
    "RestoreError",
    "NoBackupFoundError",
    "MalformedRecordError",
    "SysupgradeArchiver",
    "ArchiverError",
    "ConsoleOperator",
    "Operator",
]
