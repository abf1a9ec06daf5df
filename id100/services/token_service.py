"""Token store: create, look up and mutate upload tokens.

Every mutator loads the row with ``SELECT ... FOR UPDATE`` so concurrent
requests for the same token are serialized on databases that support row
locks. Mutators that address a token by id return the number of rows they
changed; 0 means the token does not exist.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.errors import AlreadyBoundError, NotPrimaryError, QuotaExhaustedError
from id100.core.security import TOKEN_LENGTH, generate_secure_token, mask_secret
from id100.models.base import as_utc, utcnow
from id100.models.token import DEFAULT_MAX_UPLOADS, UploadToken
from id100.services import invitation_service

logger = logging.getLogger("id100.tokens")


async def _lock(db: AsyncSession, token_id: int) -> UploadToken | None:
    result = await db.execute(
        select(UploadToken)
        .where(UploadToken.id == token_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create(
    db: AsyncSession,
    *,
    bag_name: str,
    max_uploads: int = DEFAULT_MAX_UPLOADS,
) -> UploadToken:
    if max_uploads < 1:
        raise ValueError("max_uploads must be at least 1")
    token = UploadToken(
        token=generate_secure_token(TOKEN_LENGTH),
        bag_name=bag_name,
        max_uploads=max_uploads,
        total_uploads=0,
        total_sessions=1,
        is_active=True,
    )
    db.add(token)
    await db.flush()
    logger.info("Created token id=%d bag=%s", token.id, bag_name)
    return token


async def find_by_string(db: AsyncSession, token: str) -> UploadToken | None:
    result = await db.execute(
        select(UploadToken)
        .where(UploadToken.token == token)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get(db: AsyncSession, token_id: int) -> UploadToken | None:
    return await db.get(UploadToken, token_id, populate_existing=True)


async def list_all(db: AsyncSession) -> list[UploadToken]:
    result = await db.execute(select(UploadToken).order_by(UploadToken.id))
    return list(result.scalars().all())


async def assign(db: AsyncSession, token_id: int, *, player_name: str) -> int:
    """Hand the token to ``player_name`` and (re)activate it.

    A new name moves the round stamp so remembered browser views go stale.
    The primary browser and its invited sessions are kept; an unclaimed
    token is bound by the first browser that opens it. Assigning the
    current holder again changes nothing but the active flag.
    """
    token = await _lock(db, token_id)
    if token is None:
        return 0
    if token.current_player != player_name:
        token.current_player = player_name
        token.session_started_at = utcnow()
    token.is_active = True
    await db.flush()
    return 1


async def reset(db: AsyncSession, token_id: int) -> int:
    """Start a new round: bump the generation, zero the counter, clear the holder."""
    token = await _lock(db, token_id)
    if token is None:
        return 0
    token.total_sessions += 1
    token.total_uploads = 0
    token.session_started_at = utcnow()
    token.current_player = None
    token.current_player_city = None
    token.primary_session = None
    token.is_active = True
    await invitation_service.revoke_all_for_token(db, token_id=token_id)
    await db.flush()
    logger.info("Reset token id=%d to round %d", token_id, token.total_sessions)
    return 1


async def deactivate(db: AsyncSession, token_id: int) -> int:
    token = await _lock(db, token_id)
    if token is None:
        return 0
    token.is_active = False
    await db.flush()
    return 1


async def set_quota(db: AsyncSession, token_id: int, *, max_uploads: int) -> int:
    if max_uploads < 1:
        raise ValueError("max_uploads must be at least 1")
    token = await _lock(db, token_id)
    if token is None:
        return 0
    token.max_uploads = max_uploads
    await db.flush()
    return 1


async def bind_primary(
    db: AsyncSession,
    token_id: int,
    *,
    session_id: str,
    player_name: str,
    player_city: str | None = None,
) -> UploadToken:
    """Make ``session_id`` the primary browser of the token.

    Raises AlreadyBoundError when a different session already holds it.
    Returns the locked, updated token.
    """
    token = await _lock(db, token_id)
    if token is None:
        raise LookupError(f"token {token_id} not found")
    if token.primary_session and token.primary_session != session_id:
        raise AlreadyBoundError()
    token.primary_session = session_id
    token.current_player = player_name
    token.current_player_city = player_city or None
    token.session_started_at = utcnow()
    await db.flush()
    logger.info("Bound token id=%d to session %s", token_id, mask_secret(session_id))
    return token


async def lock_for_upload(db: AsyncSession, token_id: int) -> UploadToken:
    """Lock the token for the rest of the transaction and check its quota."""
    token = await _lock(db, token_id)
    if token is None:
        raise LookupError(f"token {token_id} not found")
    if token.total_uploads >= token.max_uploads:
        raise QuotaExhaustedError(bag_name=token.bag_name)
    return token


async def record_upload(db: AsyncSession, token_id: int) -> UploadToken:
    """Count one upload against the quota, or raise QuotaExhaustedError."""
    token = await _lock(db, token_id)
    if token is None:
        raise LookupError(f"token {token_id} not found")
    if token.total_uploads >= token.max_uploads:
        raise QuotaExhaustedError()
    token.total_uploads += 1
    await db.flush()
    return token


async def decrement_uploads(db: AsyncSession, token_id: int, *, session_number: int) -> None:
    """Give back one upload, but only while the round it was made in is current."""
    token = await _lock(db, token_id)
    if token is None or token.total_sessions != session_number:
        return
    if token.total_uploads > 0:
        token.total_uploads -= 1
    await db.flush()


async def release(db: AsyncSession, token_id: int, *, session_id: str) -> UploadToken:
    """The primary gives the bag back.

    Clears the holder and primary, moves the round stamp so every
    remembered browser view goes stale, and revokes all delegations.
    The upload counter and round number stay as they are.
    """
    token = await _lock(db, token_id)
    if token is None:
        raise LookupError(f"token {token_id} not found")
    if not token.primary_session or token.primary_session != session_id:
        raise NotPrimaryError()
    token.current_player = None
    token.current_player_city = None
    token.primary_session = None
    token.session_started_at = utcnow()
    await invitation_service.revoke_all_for_token(db, token_id=token_id)
    await db.flush()
    logger.info("Token id=%d released by its primary", token_id)
    return token


def is_stale(token: UploadToken, *, session_number: int | None, started_at: datetime | None) -> bool:
    """Whether a remembered (round, stamp) pair no longer matches the token."""
    if session_number != token.total_sessions:
        return True
    return as_utc(started_at) != as_utc(token.session_started_at)
