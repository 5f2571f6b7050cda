"""
Command-line interface for wrtgist.

Provides the backup, restore, list and decrypt commands.

Secrets come from the environment (GITHUB_PAT, ENCRYPTION_PASSWORD, and
optionally BACKUP_GIST_ID); everything else from ~/.wrtgist/config.yaml.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn

from wrtgist import __version__
from wrtgist.backup import (
    BackupManager,
    ConsoleOperator,
    RestoreError,
    SysupgradeArchiver,
)
from wrtgist.config.credentials import (
    CredentialError,
    Credentials,
    load_credentials,
)
from wrtgist.config.settings import (
    ConfigurationError,
    Settings,
    load_config,
)
from wrtgist.crypto import CipherError
from wrtgist.gist import GistError

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PRECONDITION = 2
EXIT_INTERRUPTED = 130


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode.
    """
    if force or not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """
    Print an error message (always shown, even in quiet mode).

    Args:
        message: The error message to print.
    """
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the wrtgist CLI."""
    parser = argparse.ArgumentParser(
        prog="wrtgist",
        description="Encrypted OpenWrt configuration backups in private GitHub Gists",
        epilog=(
            "Environment: GITHUB_PAT (token with 'gist' scope), "
            "ENCRYPTION_PASSWORD, BACKUP_GIST_ID (optional)"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"wrtgist {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.wrtgist/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # backup command
    backup_parser = subparsers.add_parser(
        "backup",
        help="Archive, encrypt and upload the router configuration",
        description=(
            "Run sysupgrade -b, encrypt the archive and store it in a private Gist. "
            "Adds a file to the configured Gist, or creates a new one."
        ),
    )
    backup_target = backup_parser.add_mutually_exclusive_group()
    backup_target.add_argument(
        "--gist-id",
        metavar="ID",
        dest="gist_id",
        help="Gist to add the backup to (default: BACKUP_GIST_ID)",
    )
    backup_target.add_argument(
        "--new",
        action="store_true",
        help="Always create a new Gist, ignoring any configured id",
    )
    backup_parser.set_defaults(func=cmd_backup)

    # restore command
    restore_parser = subparsers.add_parser(
        "restore",
        help="Download, decrypt and apply a backup",
        description=(
            "Fetch a backup from a Gist, decrypt it and, after confirmation, "
            "apply it with sysupgrade -r (the router reboots)."
        ),
    )
    restore_source = restore_parser.add_mutually_exclusive_group()
    restore_source.add_argument(
        "--gist-id",
        metavar="ID",
        dest="gist_id",
        help="Gist to restore from (default: BACKUP_GIST_ID)",
    )
    restore_source.add_argument(
        "--latest",
        action="store_true",
        help="Ignore any configured id and use the newest backup Gist",
    )
    restore_parser.add_argument(
        "--output",
        "-o",
        metavar="PATH",
        help="Also save the decrypted archive to PATH",
    )
    restore_parser.add_argument(
        "--no-apply",
        action="store_true",
        dest="no_apply",
        help="Do not offer to run sysupgrade -r (without --output this only verifies)",
    )
    restore_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Answer yes to confirmation prompts",
    )
    restore_parser.set_defaults(func=cmd_restore)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List backup Gists",
        description="Show private backup Gists, newest first, with their encrypted files.",
    )
    list_parser.set_defaults(func=cmd_list)

    # decrypt command
    decrypt_parser = subparsers.add_parser(
        "decrypt",
        help="Decrypt a downloaded backup file",
        description="Decrypt a local artifact (base64 or binary) without network access.",
    )
    decrypt_parser.add_argument(
        "artifact",
        metavar="FILE",
        help="Encrypted backup file",
    )
    decrypt_parser.add_argument(
        "--output",
        "-o",
        metavar="PATH",
        help="Output path (default: FILE without its encrypted suffix)",
    )
    decrypt_parser.set_defaults(func=cmd_decrypt)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_runtime(
    args: argparse.Namespace,
    require_token: bool = True,
) -> tuple[Settings, Credentials]:
    """
    Load settings and credentials once, before any procedure runs.

    Raises:
        ConfigurationError: If the config file is invalid.
        CredentialError: If a required environment variable is missing.
    """
    config_path = Path(args.config) if getattr(args, "config", None) else None
    settings = load_config(config_path)

    # The config file log level applies unless -v/-q was given
    if not getattr(args, "verbose", 0) and not getattr(args, "quiet", False):
        logging.getLogger().setLevel(settings.log_level)

    credentials = load_credentials(
        default_gist_id=settings.gist.gist_id,
        require_token=require_token,
    )
    return settings, credentials


def cmd_backup(args: argparse.Namespace) -> int:
    """Archive, encrypt and upload the router configuration."""
    settings, credentials = load_runtime(args)

    archiver = SysupgradeArchiver(settings.device.sysupgrade_command)
    if not archiver.is_available():
        output_error(
            f"Error: '{settings.device.sysupgrade_command}' not found. "
            "Backups must run on the router."
        )
        return EXIT_PRECONDITION

    gist_id = "" if args.new else args.gist_id
    target = gist_id if gist_id is not None else credentials.gist_id

    output("OpenWrt Configuration Backup")
    output("=" * 50)
    output()
    output(f"Target: {'Gist ' + target if target else 'new private Gist'}")
    output(f"Scheme: {settings.encryption.scheme}")
    output()

    manager = BackupManager(settings, credentials, archiver=archiver)
    result = manager.create_backup(gist_id=gist_id)

    if result.success:
        output("Encrypted backup successfully pushed!")
        output()
        output(f"  File: {result.filename}")
        output(f"  Size: {result.size_bytes:,} bytes")
        output(f"  Gist ID: {result.gist_id}")
        output(f"  Gist URL: {result.gist_url}")
        if result.created:
            output()
            output("To add future backups to this Gist, set:")
            output(f"  export BACKUP_GIST_ID={result.gist_id}")
        return EXIT_OK

    output_error(f"Backup failed: {result.error}")
    return EXIT_FAILURE


def cmd_restore(args: argparse.Namespace) -> int:
    """Download, decrypt and optionally apply a backup."""
    settings, credentials = load_runtime(args)

    apply = not args.no_apply
    archiver = SysupgradeArchiver(settings.device.sysupgrade_command)
    if apply and not archiver.is_available():
        output_error(
            f"Error: '{settings.device.sysupgrade_command}' not found. "
            "Use --no-apply --output PATH to only download and decrypt."
        )
        return EXIT_PRECONDITION

    if args.latest:
        gist_id = ""
    else:
        gist_id = args.gist_id

    output("OpenWrt Configuration Restore")
    output("=" * 50)
    output()

    manager = BackupManager(
        settings,
        credentials,
        archiver=archiver,
        operator=ConsoleOperator(assume_yes=args.yes),
    )
    result = manager.restore_backup(
        gist_id=gist_id,
        output_path=Path(args.output) if args.output else None,
        apply=apply,
    )

    if not result.success:
        output_error(f"Restore failed: {result.error}")
        if result.retained_artifact:
            output_error(f"Encrypted artifact kept at: {result.retained_artifact}")
        return EXIT_FAILURE

    output()
    output(f"Decrypted {result.filename} from Gist {result.gist_id} ({result.size_bytes:,} bytes)")
    if result.output_path:
        output(f"  Saved to: {result.output_path}")
        output(f"  Apply later with: {settings.device.sysupgrade_command} -r {result.output_path}")
    if result.applied:
        output("Configuration applied. The router is rebooting.")
    elif apply:
        output("Restore not applied.")
    return EXIT_OK


def cmd_list(args: argparse.Namespace) -> int:
    """List backup Gists."""
    settings, credentials = load_runtime(args)

    manager = BackupManager(settings, credentials)
    try:
        records = manager.list_backups()
    except GistError as e:
        output_error(f"Error: {e}")
        return EXIT_FAILURE

    if not records:
        output("No backup Gists found.", force=True)
        return EXIT_OK

    suffix = settings.gist.encrypted_suffix
    for record in records:
        created = record.created_at.isoformat() if record.created_at else "unknown"
        output(f"{record.id}  {created}  {record.description}", force=True)
        for name in sorted(record.files):
            if name.endswith(suffix):
                output(f"    {name}", force=True)
    return EXIT_OK


def cmd_decrypt(args: argparse.Namespace) -> int:
    """Decrypt a downloaded backup file."""
    settings, credentials = load_runtime(args, require_token=False)

    source = Path(args.artifact)
    if not source.is_file():
        output_error(f"Error: File not found: {source}")
        return EXIT_FAILURE

    if args.output:
        destination = Path(args.output)
    else:
        suffix = settings.gist.encrypted_suffix
        name = source.name[: -len(suffix)] if source.name.endswith(suffix) else source.name + ".dec"
        destination = source.with_name(name)

    manager = BackupManager(settings, credentials)
    try:
        size = manager.decrypt_artifact(source, destination)
    except (CipherError, RestoreError) as e:
        output_error(f"Decryption failed: {e}")
        return EXIT_FAILURE

    output(f"Decrypted {source} -> {destination} ({size:,} bytes)")
    return EXIT_OK


def main() -> NoReturn:
    """Main entry point for the wrtgist CLI."""
    parser = create_parser()
    args = parser.parse_args()

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet, args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_OK)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(EXIT_INTERRUPTED)
    except CredentialError as e:
        output_error(f"Credential error: {e}")
        sys.exit(EXIT_PRECONDITION)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(EXIT_PRECONDITION)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
