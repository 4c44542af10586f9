"""Secure persistence for token records.

Two backends share the same small capability (store / load / clear /
is_supported):

* ``KeychainStore`` keeps the record in the OS keychain through ``keyring``
  (macOS Keychain, Windows Credential Locker, Linux Secret Service).
* ``EncryptedFileStore`` keeps it in a Fernet-encrypted file whose key is
  derived from a passphrase, for hosts without a usable keychain.

"Not found" is a normal outcome of load and clear for both.
"""

import base64
import json
import logging
import os
from pathlib import Path
from typing import Protocol

import keyring
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError

from webex_mcp.config import WebexConfig
from webex_mcp.errors import TokenStoreError
from webex_mcp.models import TokenRecord

logger = logging.getLogger(__name__)

KEYCHAIN_SERVICE = "webex-mcp-server"
PERSONAL_TOKEN_ACCOUNT = "personal-access-token"
OAUTH_TOKEN_ACCOUNT = "oauth-token"


class TokenStore(Protocol):
    def store(self, record: TokenRecord) -> None: ...
    def load(self) -> TokenRecord | None: ...
    def clear(self) -> None: ...
    def is_supported(self) -> bool: ...


def _decode_record(raw: str, source: str) -> TokenRecord | None:
    try:
        return TokenRecord.from_dict(json.loads(raw))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Ignoring unreadable token record in %s: %s", source, e)
        return None


# ------------------------------------------------------------------
# OS keychain
# ------------------------------------------------------------------

class KeychainStore:
    """Token record stored as one JSON entry in the OS keychain."""

    def __init__(self, account: str = PERSONAL_TOKEN_ACCOUNT, service: str = KEYCHAIN_SERVICE):
        self.service = service
        self.account = account

    def is_supported(self) -> bool:
        return not isinstance(keyring.get_keyring(), fail.Keyring)

    def store(self, record: TokenRecord) -> None:
        try:
            keyring.set_password(self.service, self.account, json.dumps(record.to_dict()))
        except KeyringError as e:
            raise TokenStoreError(f"Failed to store token in keychain: {e}") from e
        logger.info("Token stored in keychain (%s)", self.account)

    def load(self) -> TokenRecord | None:
        try:
            raw = keyring.get_password(self.service, self.account)
        except KeyringError as e:
            logger.warning("Could not read keychain entry %s: %s", self.account, e)
            return None
        if not raw:
            logger.debug("No stored token found in keychain (%s)", self.account)
            return None
        return _decode_record(raw, f"keychain entry {self.account}")

    def clear(self) -> None:
        try:
            keyring.delete_password(self.service, self.account)
        except PasswordDeleteError:
            pass  # not stored
        except KeyringError as e:
            logger.warning("Could not delete keychain entry %s: %s", self.account, e)
            return
        logger.info("Token cleared from keychain (%s)", self.account)


# ------------------------------------------------------------------
# Encrypted file
# ------------------------------------------------------------------

def get_key(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a passphrase."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=480000,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode()))


class EncryptedFileStore:
    """Token record encrypted at rest with a passphrase-derived key.

    Files live in ``directory``: ``<name>.enc`` holds the record and
    ``.salt`` the KDF salt shared by every record in that directory.
    Both are written with 0600 permissions.
    """

    def __init__(self, directory: Path, passphrase: str, name: str = PERSONAL_TOKEN_ACCOUNT):
        self.directory = Path(directory)
        self.passphrase = passphrase
        self.token_file = self.directory / f"{name}.enc"
        self.salt_file = self.directory / ".salt"
        self._fernet: Fernet | None = None

    def is_supported(self) -> bool:
        return bool(self.passphrase)

    def _get_fernet(self, create_salt: bool) -> Fernet | None:
        if self._fernet is not None:
            return self._fernet
        if not self.salt_file.exists():
            if not create_salt:
                return None
            self.directory.mkdir(parents=True, exist_ok=True)
            self.salt_file.write_bytes(os.urandom(16))
            os.chmod(self.salt_file, 0o600)
        self._fernet = Fernet(get_key(self.passphrase, self.salt_file.read_bytes()))
        return self._fernet

    def store(self, record: TokenRecord) -> None:
        if not self.passphrase:
            raise TokenStoreError(
                "No passphrase configured for the encrypted token file. "
                "Set WEBEX_TOKEN_STORE_PASSPHRASE."
            )
        try:
            f = self._get_fernet(create_salt=True)
            self.token_file.write_bytes(f.encrypt(json.dumps(record.to_dict()).encode()))
            os.chmod(self.token_file, 0o600)
        except OSError as e:
            raise TokenStoreError(f"Failed to write {self.token_file}: {e}") from e
        logger.info("Token stored in %s", self.token_file)

    def load(self) -> TokenRecord | None:
        if not self.passphrase or not self.token_file.exists():
            return None
        f = self._get_fernet(create_salt=False)
        if f is None:
            return None
        try:
            raw = f.decrypt(self.token_file.read_bytes()).decode()
        except InvalidToken:
            logger.warning("Could not decrypt %s (wrong passphrase?)", self.token_file)
            return None
        return _decode_record(raw, str(self.token_file))

    def clear(self) -> None:
        self.token_file.unlink(missing_ok=True)
        logger.info("Token cleared from %s", self.token_file)


def build_token_store(config: WebexConfig, account: str) -> TokenStore:
    """Create the store selected by WEBEX_TOKEN_STORE for one account."""
    if config.token_store == "file":
        return EncryptedFileStore(
            config.token_store_dir, config.token_store_passphrase, name=account
        )
    if config.token_store != "keychain":
        logger.warning(
            "Unknown WEBEX_TOKEN_STORE %r, using the keychain", config.token_store
        )
    return KeychainStore(account=account)
