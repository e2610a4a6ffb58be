"""API key issuance and resolution."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.crypto.envelope import EnvelopeEncryptor, SecretDecryptionError
from adagent.errors import UnauthorizedError
from adagent.models.api_key import ApiKey
from adagent.services.security import (
    display_prefix,
    generate_api_key,
    lookup_hash,
    secrets_match,
)

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS: dict[str, list[str]] = {
    "campaigns": ["read", "write"],
    "assets": ["read", "write"],
    "audiences": ["read", "write"],
    "budget": ["read"],
}

_UNMATCHED_SECRET = "bbl_" + "0" * 32


@lru_cache(maxsize=1)
def _encryptor() -> EnvelopeEncryptor:
    """Return the cached encryptor instance.

    Returns
    -------
    EnvelopeEncryptor
        Encryptor bound to the current settings.
    """
    from adagent.config import get_settings

    return EnvelopeEncryptor(get_settings().master_key_path)


async def create_api_key(
    session: AsyncSession,
    *,
    org_id: UUID,
    name: str,
    prefix: str,
    description: str | None = None,
    permissions: dict[str, list[str]] | None = None,
    expires_at: datetime | None = None,
    metadata: dict[str, Any] | None = None,
) -> tuple[ApiKey, str]:
    """Issue a new API key.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Owning organization.
    name : str
        Human-readable key name.
    prefix : str
        Key prefix.
    description : str | None, default=None
        Optional description.
    permissions : dict[str, list[str]] | None, default=None
        Resource to action grants; :data:`DEFAULT_PERMISSIONS` when omitted.
    expires_at : datetime | None, default=None
        Optional expiry.
    metadata : dict[str, Any] | None, default=None
        Extra key metadata such as custom ``rate_limits``.

    Returns
    -------
    tuple[ApiKey, str]
        Persisted row and the plaintext key, which is never returned again.
    """
    plaintext = generate_api_key(prefix)
    payload = _encryptor().encrypt(plaintext)
    api_key = ApiKey(
        org_id=org_id,
        name=name,
        description=description,
        key_prefix=display_prefix(plaintext),
        key_lookup=lookup_hash(plaintext),
        encrypted_secret=payload.encrypted_secret,
        wrapped_data_key=payload.wrapped_data_key,
        permissions=permissions if permissions is not None else dict(DEFAULT_PERMISSIONS),
        key_metadata=metadata or {},
        expires_at=expires_at,
    )
    session.add(api_key)
    await session.flush()
    return api_key, plaintext


async def list_api_keys(
    session: AsyncSession, org_id: UUID, *, limit: int, offset: int
) -> list[ApiKey]:
    """List an organization's keys, newest first."""
    result = await session.execute(
        select(ApiKey)
        .where(ApiKey.org_id == org_id)
        .order_by(ApiKey.created_at.desc(), ApiKey.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_api_key_for_org_or_404(
    session: AsyncSession, *, org_id: UUID, api_key_id: UUID
) -> ApiKey:
    """Return a key owned by the organization or raise 404.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Organization identifier.
    api_key_id : UUID
        Key identifier.

    Returns
    -------
    ApiKey
        Matching key row.
    """
    result = await session.execute(
        select(ApiKey).where(ApiKey.id == api_key_id, ApiKey.org_id == org_id)
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="API key not found",
        )
    return api_key


def decrypt_api_key(api_key: ApiKey) -> str:
    """Recover the plaintext secret of a stored key.

    Parameters
    ----------
    api_key : ApiKey
        Stored key row.

    Returns
    -------
    str
        Plaintext key.
    """
    return _encryptor().decrypt(api_key.encrypted_secret, api_key.wrapped_data_key)


async def resolve_api_key(session: AsyncSession, raw_key: str) -> ApiKey:
    """Resolve a presented key to its active row.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    raw_key : str
        Key from the bearer header.

    Returns
    -------
    ApiKey
        Active, unexpired key.

    Raises
    ------
    UnauthorizedError
        With ``details.reason`` of ``invalid``, ``revoked`` or ``expired``.
    """
    result = await session.execute(
        select(ApiKey).where(ApiKey.key_lookup == lookup_hash(raw_key))
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        secrets_match(raw_key, _UNMATCHED_SECRET)
        raise UnauthorizedError("Invalid API key", {"reason": "invalid"})

    try:
        stored_secret = decrypt_api_key(api_key)
    except SecretDecryptionError:
        logger.error("API key %s could not be decrypted", api_key.id)
        raise UnauthorizedError("Invalid API key", {"reason": "invalid"}) from None
    if not secrets_match(raw_key, stored_secret):
        raise UnauthorizedError("Invalid API key", {"reason": "invalid"})

    if api_key.is_revoked:
        raise UnauthorizedError("API key has been revoked", {"reason": "revoked"})
    now = datetime.now(timezone.utc)
    if api_key.is_expired(now):
        raise UnauthorizedError("API key has expired", {"reason": "expired"})

    api_key.last_used_at = now
    await session.commit()
    return api_key


def revoke_api_key(api_key: ApiKey) -> ApiKey:
    """Mark a key revoked; idempotent."""
    if api_key.revoked_at is None:
        api_key.revoked_at = datetime.now(timezone.utc)
    return api_key
