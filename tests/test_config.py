"""Tests for configuration modules (credentials and settings)."""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from wrtgist.config.credentials import (
    GIST_ID_ENV_VAR,
    PASSWORD_ENV_VAR,
    TOKEN_ENV_VAR,
    CredentialError,
    Credentials,
    MissingCredentialError,
    load_credentials,
)
from wrtgist.config.settings import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_DESCRIPTION_MARKER,
    SCHEME_CHACHA20_POLY1305,
    SCHEME_OPENSSL_CHACHA20,
    ConfigurationError,
    EncryptionConfig,
    Settings,
    _apply_environment_overrides,
    _set_nested_attr,
    _validate_config,
    get_config_path,
    load_config,
)


class TestLoadCredentials(unittest.TestCase):
    """Tests for environment-sourced credentials."""

    def test_all_present(self) -> None:
        env = {
            TOKEN_ENV_VAR: "ghp_abc",
            PASSWORD_ENV_VAR: "secret",
            GIST_ID_ENV_VAR: "abc123",
        }

        credentials = load_credentials(env)

        self.assertEqual(credentials.token, "ghp_abc")
        self.assertEqual(credentials.password, "secret")
        self.assertEqual(credentials.gist_id, "abc123")

    def test_gist_id_optional(self) -> None:
        credentials = load_credentials({TOKEN_ENV_VAR: "t", PASSWORD_ENV_VAR: "p"})

        self.assertEqual(credentials.gist_id, "")

    def test_gist_id_falls_back_to_config(self) -> None:
        credentials = load_credentials(
            {TOKEN_ENV_VAR: "t", PASSWORD_ENV_VAR: "p"},
            default_gist_id="from-config",
        )

        self.assertEqual(credentials.gist_id, "from-config")

    def test_env_gist_id_wins_over_config(self) -> None:
        credentials = load_credentials(
            {TOKEN_ENV_VAR: "t", PASSWORD_ENV_VAR: "p", GIST_ID_ENV_VAR: "env"},
            default_gist_id="from-config",
        )

        self.assertEqual(credentials.gist_id, "env")

    def test_missing_both(self) -> None:
        with self.assertRaises(MissingCredentialError) as cm:
            load_credentials({})

        self.assertEqual(cm.exception.missing, [TOKEN_ENV_VAR, PASSWORD_ENV_VAR])
        self.assertIn(TOKEN_ENV_VAR, str(cm.exception))

    def test_empty_values_count_as_missing(self) -> None:
        with self.assertRaises(MissingCredentialError) as cm:
            load_credentials({TOKEN_ENV_VAR: "   ", PASSWORD_ENV_VAR: ""})

        self.assertEqual(len(cm.exception.missing), 2)

    def test_token_optional_for_offline_use(self) -> None:
        credentials = load_credentials({PASSWORD_ENV_VAR: "p"}, require_token=False)

        self.assertEqual(credentials.token, "")
        self.assertEqual(credentials.password, "p")

    def test_reads_os_environ_by_default(self) -> None:
        with patch.dict(os.environ, {TOKEN_ENV_VAR: "t", PASSWORD_ENV_VAR: "p"}):
            credentials = load_credentials()

        self.assertEqual(credentials.token, "t")

    def test_repr_hides_secrets(self) -> None:
        credentials = Credentials(token="ghp_secret", password="hunter2", gist_id="g1")

        text = repr(credentials)
        self.assertNotIn("ghp_secret", text)
        self.assertNotIn("hunter2", text)
        self.assertIn("g1", text)

    def test_missing_is_credential_error(self) -> None:
        self.assertTrue(issubclass(MissingCredentialError, CredentialError))


class TestSettings(unittest.TestCase):
    """Tests for Settings defaults."""

    def test_defaults(self) -> None:
        settings = Settings()

        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.gist.api_url, "https://api.github.com")
        self.assertEqual(settings.gist.description_marker, DEFAULT_DESCRIPTION_MARKER)
        self.assertEqual(settings.gist.encrypted_suffix, ".enc")
        self.assertEqual(settings.gist.filename_prefix, "openwrt_config")
        self.assertEqual(settings.encryption.scheme, SCHEME_CHACHA20_POLY1305)
        self.assertEqual(settings.device.sysupgrade_command, "sysupgrade")

    def test_effective_iterations(self) -> None:
        self.assertEqual(EncryptionConfig().effective_iterations, 600_000)
        self.assertEqual(
            EncryptionConfig(scheme=SCHEME_OPENSSL_CHACHA20).effective_iterations,
            100_000,
        )
        self.assertEqual(EncryptionConfig(iterations=5000).effective_iterations, 5000)


class TestLoadConfig(unittest.TestCase):
    """Tests for load_config."""

    def setUp(self) -> None:
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_path = self.temp_dir / "config.yaml"
        # Keep the developer's own WRTGIST_* variables out of the tests
        self.env_patcher = patch.dict(
            os.environ,
            {k: v for k, v in os.environ.items() if not k.startswith("WRTGIST_")},
            clear=True,
        )
        self.env_patcher.start()

    def tearDown(self) -> None:
        self.env_patcher.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_file_gives_defaults(self) -> None:
        settings = load_config(self.temp_dir / "absent.yaml")

        self.assertEqual(settings.log_level, "INFO")

    def test_yaml_values_applied(self) -> None:
        self.config_path.write_text(
            "wrtgist:\n"
            "  log_level: debug\n"
            "  scratch_dir: /var/tmp\n"
            "gist:\n"
            "  gist_id: abc123\n"
            "  description_marker: My Router Backup\n"
            "  request_timeout: 10\n"
            "  max_retries: 0\n"
            "encryption:\n"
            "  scheme: OpenSSL-ChaCha20-PBKDF2\n"
            "  iterations: 200000\n"
            "device:\n"
            "  sysupgrade_command: /sbin/sysupgrade\n"
        )

        settings = load_config(self.config_path)

        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(settings.scratch_dir, "/var/tmp")
        self.assertEqual(settings.gist.gist_id, "abc123")
        self.assertEqual(settings.gist.description_marker, "My Router Backup")
        self.assertEqual(settings.gist.request_timeout, 10.0)
        self.assertEqual(settings.gist.max_retries, 0)
        self.assertEqual(settings.encryption.scheme, SCHEME_OPENSSL_CHACHA20)
        self.assertEqual(settings.encryption.iterations, 200_000)
        self.assertEqual(settings.device.sysupgrade_command, "/sbin/sysupgrade")

    def test_empty_file(self) -> None:
        self.config_path.write_text("")

        settings = load_config(self.config_path)

        self.assertEqual(settings.gist.max_retries, 2)

    def test_invalid_yaml(self) -> None:
        self.config_path.write_text("gist: [unclosed")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_non_mapping_yaml(self) -> None:
        self.config_path.write_text("- just\n- a list\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_invalid_iterations_value(self) -> None:
        self.config_path.write_text("encryption:\n  iterations: lots\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_environment_overrides(self) -> None:
        self.config_path.write_text("gist:\n  api_url: https://from-file.example\n")
        env = {
            "WRTGIST_API_URL": "https://ghe.example/api/v3",
            "WRTGIST_LOG_LEVEL": "warning",
            "WRTGIST_MAX_RETRIES": "5",
            "WRTGIST_ENCRYPTION_SCHEME": SCHEME_OPENSSL_CHACHA20,
            "WRTGIST_ITERATIONS": "150000",
        }

        with patch.dict(os.environ, env):
            settings = load_config(self.config_path)

        self.assertEqual(settings.gist.api_url, "https://ghe.example/api/v3")
        self.assertEqual(settings.log_level, "WARNING")
        self.assertEqual(settings.gist.max_retries, 5)
        self.assertEqual(settings.encryption.scheme, SCHEME_OPENSSL_CHACHA20)
        self.assertEqual(settings.encryption.iterations, 150_000)

    def test_bad_environment_value(self) -> None:
        with patch.dict(os.environ, {"WRTGIST_MAX_RETRIES": "many"}):
            with self.assertRaises(ConfigurationError):
                load_config(self.config_path)

    def test_config_path_from_environment(self) -> None:
        with patch.dict(os.environ, {"WRTGIST_CONFIG": str(self.config_path)}):
            self.assertEqual(get_config_path(), self.config_path)

        self.assertEqual(get_config_path(), DEFAULT_CONFIG_FILE)


class TestValidateConfig(unittest.TestCase):
    """Tests for _validate_config."""

    def test_valid_defaults(self) -> None:
        _validate_config(Settings())

    def test_invalid_log_level(self) -> None:
        settings = Settings()
        settings.log_level = "LOUD"

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)

    def test_invalid_scheme(self) -> None:
        settings = Settings()
        settings.encryption.scheme = "aes-ecb"

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)

    def test_too_few_iterations(self) -> None:
        settings = Settings()
        settings.encryption.iterations = 10

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)

    def test_empty_suffix(self) -> None:
        settings = Settings()
        settings.gist.encrypted_suffix = ""

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)

    def test_non_positive_timeout(self) -> None:
        settings = Settings()
        settings.gist.request_timeout = 0

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)

    def test_negative_retries(self) -> None:
        settings = Settings()
        settings.gist.max_retries = -1

        with self.assertRaises(ConfigurationError):
            _validate_config(settings)


class TestHelpers(unittest.TestCase):
    """Tests for private helpers."""

    def test_set_nested_attr(self) -> None:
        settings = Settings()

        _set_nested_attr(settings, "gist.filename_prefix", "router1")

        self.assertEqual(settings.gist.filename_prefix, "router1")

    def test_environment_overrides_ignore_empty(self) -> None:
        settings = Settings()

        with patch.dict(os.environ, {"WRTGIST_API_URL": ""}):
            _apply_environment_overrides(settings)

        self.assertEqual(settings.gist.api_url, "https://api.github.com")


if __name__ == "__main__":
    unittest.main()
