"""
wrtgist - Encrypted OpenWrt configuration backups in GitHub Gists

Packs the router configuration with sysupgrade, encrypts it with a
password-derived key and stores it as a file in a private Gist. Restores
work the other way round: find the backup, download, decrypt and
(after confirmation) hand the archive back to sysupgrade.

Key Features:
    - Authenticated encryption with PBKDF2 key derivation
    - Interoperable OpenSSL ChaCha20 artifacts for older backups
    - Discovery of the newest backup Gist when no id is given
    - No plaintext left on disk after a run, whatever the outcome
"""

__version__ = "0.1.0"

from wrtgist.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
