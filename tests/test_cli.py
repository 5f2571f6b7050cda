"""
Tests for the CLI commands.

Uses Python's unittest module.
Tests argument parsing, exit codes and the offline decrypt command.
"""

from __future__ import annotations

import base64
import io
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from wrtgist.backup import BackupResult
from wrtgist.cli import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_PRECONDITION,
    create_parser,
    main,
    set_output_mode,
)
from wrtgist.config.settings import MIN_ITERATIONS
from wrtgist.crypto.cipher import ArtifactCipher
from wrtgist.gist.models import GistRecord


class TestArgumentParser(unittest.TestCase):
    """Tests for CLI argument parsing."""

    def setUp(self) -> None:
        """Set up parser for tests."""
        self.parser = create_parser()

    def test_version_argument(self) -> None:
        """Test --version argument."""
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                self.parser.parse_args(["--version"])

        self.assertEqual(cm.exception.code, 0)

    def test_no_command_defaults(self) -> None:
        """Test parsing with no command."""
        args = self.parser.parse_args([])

        self.assertIsNone(args.command)
        self.assertEqual(args.verbose, 0)
        self.assertFalse(args.quiet)

    def test_verbose_flag(self) -> None:
        """Test -v verbose flag."""
        self.assertEqual(self.parser.parse_args(["-vv"]).verbose, 2)

    def test_backup_defaults(self) -> None:
        """Test backup with no target options."""
        args = self.parser.parse_args(["backup"])

        self.assertEqual(args.command, "backup")
        self.assertIsNone(args.gist_id)
        self.assertFalse(args.new)

    def test_backup_gist_id(self) -> None:
        """Test backup --gist-id."""
        args = self.parser.parse_args(["backup", "--gist-id", "abc123"])

        self.assertEqual(args.gist_id, "abc123")

    def test_backup_target_exclusive(self) -> None:
        """--gist-id and --new cannot be combined."""
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                self.parser.parse_args(["backup", "--gist-id", "x", "--new"])

    def test_restore_options(self) -> None:
        """Test restore flags."""
        args = self.parser.parse_args(
            ["restore", "--latest", "-o", "/tmp/config.tar.gz", "--no-apply", "-y"]
        )

        self.assertTrue(args.latest)
        self.assertEqual(args.output, "/tmp/config.tar.gz")
        self.assertTrue(args.no_apply)
        self.assertTrue(args.yes)

    def test_restore_defaults(self) -> None:
        """Test restore with no options."""
        args = self.parser.parse_args(["restore"])

        self.assertIsNone(args.gist_id)
        self.assertFalse(args.latest)
        self.assertIsNone(args.output)
        self.assertFalse(args.no_apply)
        self.assertFalse(args.yes)

    def test_decrypt_requires_file(self) -> None:
        """decrypt needs an artifact path."""
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                self.parser.parse_args(["decrypt"])

        args = self.parser.parse_args(["decrypt", "backup.enc", "-o", "out.tar.gz"])
        self.assertEqual(args.artifact, "backup.enc")
        self.assertEqual(args.output, "out.tar.gz")


class TestMain(unittest.TestCase):
    """Tests for main() exit codes."""

    def setUp(self) -> None:
        self.temp_dir = Path(tempfile.mkdtemp())
        self.base_env = {
            "WRTGIST_CONFIG": str(self.temp_dir / "absent.yaml"),
            "WRTGIST_SCRATCH_DIR": str(self.temp_dir / "scratch"),
        }

    def tearDown(self) -> None:
        set_output_mode()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_main(self, argv: list[str], env: dict[str, str]) -> tuple[int, str, str]:
        stdout, stderr = io.StringIO(), io.StringIO()
        with patch.dict(os.environ, {**self.base_env, **env}, clear=True), \
                patch("sys.argv", ["wrtgist", *argv]), \
                redirect_stdout(stdout), redirect_stderr(stderr):
            with self.assertRaises(SystemExit) as cm:
                main()
        return cm.exception.code, stdout.getvalue(), stderr.getvalue()

    def test_no_command_prints_help(self) -> None:
        code, stdout, _ = self.run_main([], {})

        self.assertEqual(code, EXIT_OK)
        self.assertIn("usage:", stdout)

    def test_missing_credentials(self) -> None:
        """Missing environment variables stop before any work."""
        code, _, stderr = self.run_main(["backup"], {})

        self.assertEqual(code, EXIT_PRECONDITION)
        self.assertIn("GITHUB_PAT", stderr)
        self.assertIn("ENCRYPTION_PASSWORD", stderr)

    def test_invalid_config(self) -> None:
        """An invalid config file is a precondition failure."""
        config = self.temp_dir / "config.yaml"
        config.write_text("encryption:\n  scheme: rot13\n")

        code, _, stderr = self.run_main(
            ["--config", str(config), "list"],
            {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"},
        )

        self.assertEqual(code, EXIT_PRECONDITION)
        self.assertIn("Configuration error", stderr)

    @patch("wrtgist.cli.SysupgradeArchiver.is_available", return_value=False)
    def test_backup_requires_sysupgrade(self, _mock_available) -> None:
        """Backups refuse to run off the router."""
        code, _, stderr = self.run_main(
            ["backup"], {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_PRECONDITION)
        self.assertIn("not found", stderr)

    @patch("wrtgist.cli.SysupgradeArchiver.is_available", return_value=True)
    @patch("wrtgist.cli.BackupManager")
    def test_backup_success(self, mock_manager, _mock_available) -> None:
        """A new Gist prints the id to export."""
        mock_manager.return_value.create_backup.return_value = BackupResult(
            success=True,
            gist_id="abc123",
            gist_url="https://gist.github.com/abc123",
            filename="openwrt_config_20240101_120000.tar.gz.enc",
            size_bytes=1024,
            created=True,
        )

        code, stdout, _ = self.run_main(
            ["backup", "--new"], {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_OK)
        self.assertIn("export BACKUP_GIST_ID=abc123", stdout)
        mock_manager.return_value.create_backup.assert_called_once_with(gist_id="")

    @patch("wrtgist.cli.SysupgradeArchiver.is_available", return_value=True)
    @patch("wrtgist.cli.BackupManager")
    def test_backup_failure(self, mock_manager, _mock_available) -> None:
        mock_manager.return_value.create_backup.return_value = BackupResult(
            success=False, error="network down"
        )

        code, _, stderr = self.run_main(
            ["backup"], {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("network down", stderr)

    @patch("wrtgist.cli.SysupgradeArchiver.is_available", return_value=False)
    def test_restore_apply_requires_sysupgrade(self, _mock_available) -> None:
        """Applying needs sysupgrade, download-only does not."""
        code, _, stderr = self.run_main(
            ["restore"], {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_PRECONDITION)
        self.assertIn("--no-apply", stderr)

    @patch("wrtgist.cli.BackupManager")
    def test_list(self, mock_manager) -> None:
        mock_manager.return_value.list_backups.return_value = [
            GistRecord.from_dict(
                {
                    "id": "abc123",
                    "description": "OpenWrt Config Backup - Encrypted (2024-01-01 12:00:00)",
                    "created_at": "2024-01-01T12:00:00Z",
                    "files": {"openwrt_config_20240101_120000.tar.gz.enc": {}},
                }
            )
        ]

        code, stdout, _ = self.run_main(
            ["-q", "list"], {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_OK)
        self.assertIn("abc123", stdout)
        self.assertIn("openwrt_config_20240101_120000.tar.gz.enc", stdout)

    @patch("wrtgist.cli.BackupManager")
    def test_keyboard_interrupt(self, mock_manager) -> None:
        mock_manager.return_value.list_backups.side_effect = KeyboardInterrupt

        code, _, _ = self.run_main(
            ["list"], {"GITHUB_PAT": "t", "ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_INTERRUPTED)

    def test_decrypt_offline(self) -> None:
        """decrypt works with only the password set."""
        archive = os.urandom(256)
        artifact = ArtifactCipher("p", iterations=MIN_ITERATIONS).encrypt(archive)
        source = self.temp_dir / "openwrt_config_20240101_120000.tar.gz.enc"
        source.write_bytes(base64.b64encode(artifact))

        code, stdout, _ = self.run_main(
            ["decrypt", str(source)], {"ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_OK)
        restored = self.temp_dir / "openwrt_config_20240101_120000.tar.gz"
        self.assertEqual(restored.read_bytes(), archive)
        self.assertIn("256 bytes", stdout)

    def test_decrypt_wrong_password(self) -> None:
        artifact = ArtifactCipher("p", iterations=MIN_ITERATIONS).encrypt(b"archive")
        source = self.temp_dir / "backup.enc"
        source.write_bytes(artifact)

        code, _, stderr = self.run_main(
            ["decrypt", str(source)], {"ENCRYPTION_PASSWORD": "wrong"}
        )

        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("Decryption failed", stderr)
        self.assertFalse((self.temp_dir / "backup").exists())

    def test_decrypt_missing_file(self) -> None:
        code, _, stderr = self.run_main(
            ["decrypt", str(self.temp_dir / "nope.enc")], {"ENCRYPTION_PASSWORD": "p"}
        )

        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("File not found", stderr)


if __name__ == "__main__":
    unittest.main()
