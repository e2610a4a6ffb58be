"""Envelope encryption for API key secrets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class SecretDecryptionError(Exception):
    """Stored ciphertext could not be opened with the current master key."""


@dataclass(slots=True)
class EnvelopeCiphertext:
    """Encrypted secret and its wrapped per-secret data key."""

    encrypted_secret: bytes
    wrapped_data_key: bytes


class EnvelopeEncryptor:
    """Encrypt each secret under its own data key, wrapped by a master key.

    Parameters
    ----------
    master_key_path : Path
        File containing the master wrapping key. Created with owner-only
        permissions when missing.
    """

    def __init__(self, master_key_path: Path) -> None:
        self.master_key_path = master_key_path
        self.master_fernet = Fernet(self._load_or_create_master_key(master_key_path))

    def encrypt(self, plaintext: str) -> EnvelopeCiphertext:
        """Encrypt an API key secret.

        Parameters
        ----------
        plaintext : str
            Secret value to encrypt.

        Returns
        -------
        EnvelopeCiphertext
            Ciphertext payload and wrapped data key.
        """
        data_key = Fernet.generate_key()
        return EnvelopeCiphertext(
            encrypted_secret=Fernet(data_key).encrypt(plaintext.encode("utf-8")),
            wrapped_data_key=self.master_fernet.encrypt(data_key),
        )

    def decrypt(self, encrypted_secret: bytes, wrapped_data_key: bytes) -> str:
        """Decrypt an API key secret.

        Parameters
        ----------
        encrypted_secret : bytes
            Ciphertext bytes.
        wrapped_data_key : bytes
            Wrapped per-secret data key.

        Returns
        -------
        str
            Decrypted secret.

        Raises
        ------
        SecretDecryptionError
            If either layer fails authentication.
        """
        try:
            data_key = self.master_fernet.decrypt(wrapped_data_key)
            return Fernet(data_key).decrypt(encrypted_secret).decode("utf-8")
        except InvalidToken as exc:
            raise SecretDecryptionError("Stored secret failed to decrypt") from exc

    @staticmethod
    def _load_or_create_master_key(master_key_path: Path) -> bytes:
        if master_key_path.exists():
            return master_key_path.read_bytes().strip()
        master_key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        master_key_path.write_bytes(key)
        master_key_path.chmod(0o600)
        logger.warning("Generated new master key at %s", master_key_path)
        return key
