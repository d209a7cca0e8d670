"""
Encrypted on-disk credential store.

Holds the OAuth access/refresh tokens, their expiry and the transient PKCE
verifier as a single Fernet-encrypted JSON record.
"""

import base64
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from ..exceptions import CredentialStoreError, create_error_context

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
TOKEN_EXPIRY_KEY = "token_expiry"
PKCE_VERIFIER_KEY = "pkce_verifier"


class CredentialStore:
    """
    Key-value credential record, encrypted at rest.

    The record is loaded lazily on first access and cached for the lifetime of
    the object. ``set``/``delete`` update the cache immediately; ``save`` makes
    the changes durable.
    """

    def __init__(self, storage_path: Path, encryption_key: Optional[str] = None):
        """
        Initialize the credential store.

        Args:
            storage_path: Path of the encrypted store file
            encryption_key: Fernet key or passphrase. When omitted a key file is
                created beside the store and reused on later runs.
        """
        self.storage_path = Path(storage_path)
        self._encryption_key = encryption_key
        self._cipher: Optional[Fernet] = None
        self._data: Optional[Dict[str, Any]] = None

    @property
    def key_path(self) -> Path:
        return self.storage_path.with_name(f".{self.storage_path.stem}.key")

    def _get_cipher(self) -> Fernet:
        """Get or create the encryption cipher."""
        if self._cipher is not None:
            return self._cipher

        key = self._encryption_key
        if key:
            # Accept passphrases by deriving a valid Fernet key from them
            if len(key) != 44:  # Fernet keys are 44 chars base64
                key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest()).decode()
        else:
            key = self._load_or_create_key_file()

        self._cipher = Fernet(key.encode())
        return self._cipher

    def _load_or_create_key_file(self) -> str:
        if self.key_path.exists():
            return self.key_path.read_text().strip()

        logger.warning(
            "TOKEN_ENCRYPTION_KEY not set. "
            f"Generating a local key file at {self.key_path}"
        )
        key = Fernet.generate_key().decode()
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        self.key_path.write_text(key)
        _set_owner_only(self.key_path)
        return key

    def _load(self) -> Dict[str, Any]:
        """Load and cache the record from disk."""
        if self._data is not None:
            return self._data

        self._data = {}
        if not self.storage_path.exists():
            return self._data

        try:
            decrypted = self._get_cipher().decrypt(self.storage_path.read_bytes())
            self._data = json.loads(decrypted.decode())
        except (InvalidToken, ValueError) as e:
            logger.error(f"Failed to decrypt credential store {self.storage_path}: {e}")
            self._data = {}

        return self._data

    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key`` or None."""
        return self._load().get(key)

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` (not durable until ``save``)."""
        self._load()[key] = value

    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""
        self._load().pop(key, None)

    async def clear(self) -> None:
        """Remove every stored credential."""
        self._data = {}

    async def save(self) -> None:
        """
        Write the record to disk.

        Raises:
            CredentialStoreError: The record could not be written
        """
        data = self._load()
        tmp_path = self.storage_path.with_name(self.storage_path.name + ".tmp")

        try:
            encrypted = self._get_cipher().encrypt(json.dumps(data).encode())
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(encrypted)
            _set_owner_only(tmp_path)
            os.replace(tmp_path, self.storage_path)
        except OSError as e:
            logger.error(f"Failed to save credential store {self.storage_path}: {e}")
            raise CredentialStoreError(
                message=f"Failed to save credential store: {e}",
                context=create_error_context(operation="credential_store_save",
                                             path=str(self.storage_path)),
                cause=e,
            ) from e

        logger.debug(f"Saved credential store to {self.storage_path}")


def _set_owner_only(path: Path) -> None:
    """Restrict a file to owner read/write where the platform supports it."""
    try:
        os.chmod(path, 0o600)
    except OSError as e:
        logger.warning(f"Could not restrict permissions on {path}: {e}")
