"""Invitation registry: issue, look up, consume and revoke invitation codes.

An invitation lets the primary browser of a token admit one more browser
(a secondary session). Codes are single use by default and expire after a
TTL clamped to one week.
"""

import logging
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.errors import (
    AlreadyPrimaryError,
    InvitationExhaustedError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationRevokedError,
)
from id100.core.security import INVITATION_CODE_LENGTH, generate_secure_token, mask_secret
from id100.models.authorized_session import AuthorizedSession
from id100.models.base import as_utc, utcnow
from id100.models.invitation import SessionInvitation
from id100.models.token import UploadToken

logger = logging.getLogger("id100.invitations")

DEFAULT_TTL_HOURS = 24
MIN_TTL_HOURS = 1
MAX_TTL_HOURS = 168


def clamp_ttl(hours: int | None) -> int:
    if hours is None:
        return DEFAULT_TTL_HOURS
    return max(MIN_TTL_HOURS, min(MAX_TTL_HOURS, hours))


async def issue(
    db: AsyncSession,
    *,
    token_id: int,
    issuer_session: str,
    ttl_hours: int | None = None,
) -> SessionInvitation:
    hours = clamp_ttl(ttl_hours)
    invitation = SessionInvitation(
        code=generate_secure_token(INVITATION_CODE_LENGTH),
        token_id=token_id,
        issued_by_session=issuer_session,
        expires_at=utcnow() + timedelta(hours=hours),
        is_active=True,
        max_uses=1,
        use_count=0,
    )
    db.add(invitation)
    await db.flush()
    logger.info("Issued invitation for token id=%d valid %dh", token_id, hours)
    return invitation


async def lookup(db: AsyncSession, code: str, *, for_update: bool = False) -> SessionInvitation | None:
    stmt = select(SessionInvitation).where(SessionInvitation.code == code)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


def ensure_usable(invitation: SessionInvitation | None) -> SessionInvitation:
    """Raise the matching invitation error unless the code can still be used."""
    if invitation is None:
        raise InvitationNotFoundError()
    if not invitation.is_active:
        raise InvitationRevokedError()
    if as_utc(invitation.expires_at) <= utcnow():
        raise InvitationExpiredError()
    if invitation.exhausted:
        raise InvitationExhaustedError()
    return invitation


async def find_authorization(
    db: AsyncSession, *, token_id: int, session_id: str
) -> AuthorizedSession | None:
    result = await db.execute(
        select(AuthorizedSession)
        .where(
            AuthorizedSession.token_id == token_id,
            AuthorizedSession.session_identifier == session_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def authorization_is_live(authorization: AuthorizedSession | None) -> bool:
    if authorization is None or not authorization.is_active:
        return False
    expires_at = as_utc(authorization.expires_at)
    return expires_at is None or expires_at > utcnow()


async def consume(
    db: AsyncSession,
    code: str,
    *,
    acceptor_session: str,
    player_name: str,
    player_city: str | None = None,
) -> AuthorizedSession:
    """Admit ``acceptor_session`` to the invitation's token.

    Runs inside the request transaction with the invitation row locked. A
    browser that already holds a live authorization for the token is
    admitted again without spending a use.
    """
    invitation = await lookup(db, code, for_update=True)
    if invitation is None:
        raise InvitationNotFoundError()

    token = await db.get(UploadToken, invitation.token_id)
    if token is not None and token.primary_session == acceptor_session:
        raise AlreadyPrimaryError()

    existing = await find_authorization(
        db, token_id=invitation.token_id, session_id=acceptor_session
    )
    if authorization_is_live(existing):
        existing.last_activity_at = utcnow()
        await db.flush()
        return existing

    ensure_usable(invitation)

    now = utcnow()
    invitation.use_count += 1
    if invitation.accepted_at is None:
        invitation.accepted_at = now
        invitation.accepted_by_session = acceptor_session

    if existing is None:
        existing = AuthorizedSession(
            token_id=invitation.token_id,
            session_identifier=acceptor_session,
        )
        db.add(existing)
    existing.player_name = player_name
    existing.player_city = player_city or None
    existing.invitation_id = invitation.id
    existing.expires_at = invitation.expires_at
    existing.is_active = True
    existing.last_activity_at = now
    await db.flush()
    logger.info(
        "Invitation accepted for token id=%d by session %s",
        invitation.token_id, mask_secret(acceptor_session),
    )
    return existing


async def list_sessions(db: AsyncSession, *, token_id: int) -> list[AuthorizedSession]:
    result = await db.execute(
        select(AuthorizedSession)
        .where(AuthorizedSession.token_id == token_id, AuthorizedSession.is_active.is_(True))
        .order_by(AuthorizedSession.created_at)
    )
    return [s for s in result.scalars().all() if authorization_is_live(s)]


async def touch(db: AsyncSession, authorization: AuthorizedSession) -> None:
    authorization.last_activity_at = utcnow()
    await db.flush()


async def expire(db: AsyncSession, authorization: AuthorizedSession) -> None:
    authorization.is_active = False
    await db.flush()


async def revoke_session(db: AsyncSession, *, token_id: int, session_id: str) -> int:
    result = await db.execute(
        update(AuthorizedSession)
        .where(
            AuthorizedSession.token_id == token_id,
            AuthorizedSession.session_identifier == session_id,
            AuthorizedSession.is_active.is_(True),
        )
        .values(is_active=False)
    )
    if result.rowcount:
        logger.info("Revoked session %s on token id=%d", mask_secret(session_id), token_id)
    return result.rowcount


async def revoke_all_for_token(db: AsyncSession, *, token_id: int) -> None:
    """Deactivate every invitation and secondary session of the token."""
    await db.execute(
        update(SessionInvitation)
        .where(SessionInvitation.token_id == token_id, SessionInvitation.is_active.is_(True))
        .values(is_active=False)
    )
    await db.execute(
        update(AuthorizedSession)
        .where(AuthorizedSession.token_id == token_id, AuthorizedSession.is_active.is_(True))
        .values(is_active=False)
    )
