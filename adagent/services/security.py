"""Credential generation and comparison helpers."""

import hashlib
import hmac
import re
import secrets
import string

from argon2 import PasswordHasher
from argon2.exceptions import VerificationError

API_KEY_BODY_LENGTH = 32
DISPLAY_PREFIX_LENGTH = 12
_KEY_ALPHABET = string.ascii_letters + string.digits

password_hasher = PasswordHasher()


def generate_api_key(prefix: str) -> str:
    """Generate an agent API key.

    Parameters
    ----------
    prefix : str
        Key prefix, e.g. ``bbl_``.

    Returns
    -------
    str
        Prefix followed by 32 random alphanumeric characters.
    """
    body = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(API_KEY_BODY_LENGTH))
    return f"{prefix}{body}"


def generate_admin_token() -> str:
    """Generate an opaque dashboard admin token.

    Returns
    -------
    str
        New admin token.
    """
    return f"adm_{secrets.token_urlsafe(24)}"


def is_well_formed_api_key(api_key: str, prefix: str) -> bool:
    """Return whether a presented key matches the issued key format.

    Parameters
    ----------
    api_key : str
        Presented key.
    prefix : str
        Expected prefix.

    Returns
    -------
    bool
        Whether the key has the right prefix and body shape.
    """
    pattern = rf"{re.escape(prefix)}[A-Za-z0-9]{{{API_KEY_BODY_LENGTH}}}"
    return re.fullmatch(pattern, api_key) is not None


def display_prefix(api_key: str) -> str:
    """Return the non-secret display form of a key (``bbl_1a2b3c4d...``)."""
    return api_key[:DISPLAY_PREFIX_LENGTH] + "..."


def lookup_hash(token: str) -> str:
    """Compute a fast, non-secret hash for DB lookup.

    Parameters
    ----------
    token : str
        Raw token.

    Returns
    -------
    str
        Hex-encoded SHA-256 digest.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def secrets_match(presented: str, stored: str) -> bool:
    """Compare two secrets without leaking the mismatch position.

    Parameters
    ----------
    presented : str
        Secret supplied by the caller.
    stored : str
        Secret recovered from storage.

    Returns
    -------
    bool
        Whether both secrets are identical.
    """
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


def hash_token(token: str) -> str:
    """Hash an admin token for storage.

    Parameters
    ----------
    token : str
        Raw token.

    Returns
    -------
    str
        Argon2 token hash.
    """
    return password_hasher.hash(token)


def verify_token(token: str, token_hash: str) -> bool:
    """Verify an admin token against its hash.

    Parameters
    ----------
    token : str
        Raw token.
    token_hash : str
        Stored token hash.

    Returns
    -------
    bool
        Whether the token matches.
    """
    try:
        return password_hasher.verify(token_hash, token)
    except VerificationError:
        return False
