"""Upload service: accept photos, cooldown bookkeeping, own-upload deletion.

Key rules:
- One upload counts against the token's quota only once the image is stored
- Every accepted upload writes a Contribution and an UploadLog row for the
  token's current round
- The upload log drives the cooldown between uploads of one round
"""

import logging
import math
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.errors import CooldownError, QuotaExhaustedError, StorageError
from id100.models.base import as_utc, utcnow
from id100.models.contribution import Contribution
from id100.models.upload_log import UploadLog
from id100.services import token_service
from id100.services.storage import generate_storage_key, get_storage

logger = logging.getLogger("id100.uploads")

# Max file size: 10 MB
MAX_FILE_SIZE = 10 * 1024 * 1024

ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/heic",
}

MAX_COMMENT_LENGTH = 100
MIN_CHALLENGE = 1
MAX_CHALLENGE = 100

UPLOAD_COOLDOWN_SECONDS = 5


def validate_upload(
    *,
    challenge_number: int,
    content_type: str,
    data: bytes,
    comment: str | None,
) -> None:
    if not MIN_CHALLENGE <= challenge_number <= MAX_CHALLENGE:
        raise ValueError(f"Die Aufgabennummer muss zwischen {MIN_CHALLENGE} und {MAX_CHALLENGE} liegen.")
    if not data:
        raise ValueError("Bitte wähle ein Foto aus.")
    if len(data) > MAX_FILE_SIZE:
        raise ValueError(f"Das Foto ist zu groß. Maximal {MAX_FILE_SIZE // (1024 * 1024)} MB.")
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValueError(f"Dateityp nicht unterstützt: {content_type}")
    if comment and len(comment) > MAX_COMMENT_LENGTH:
        raise ValueError(f"Der Kommentar darf höchstens {MAX_COMMENT_LENGTH} Zeichen lang sein.")


async def last_upload_at(db: AsyncSession, *, token_id: int, session_number: int) -> datetime | None:
    result = await db.execute(
        select(func.max(UploadLog.uploaded_at)).where(
            UploadLog.token_id == token_id,
            UploadLog.session_number == session_number,
        )
    )
    return as_utc(result.scalar_one_or_none())


def cooldown_remaining(last: datetime | None, now: datetime | None = None) -> int:
    """Whole seconds left before the next upload is allowed, rounded up."""
    if last is None:
        return 0
    now = now or utcnow()
    elapsed = (now - as_utc(last)).total_seconds()
    if elapsed >= UPLOAD_COOLDOWN_SECONDS:
        return 0
    return min(UPLOAD_COOLDOWN_SECONDS, max(1, math.ceil(UPLOAD_COOLDOWN_SECONDS - elapsed)))


async def accept_upload(
    db: AsyncSession,
    *,
    token_id: int,
    session_number: int,
    player_name: str,
    player_city: str | None,
    challenge_number: int,
    filename: str,
    content_type: str,
    data: bytes,
    comment: str | None = None,
) -> Contribution:
    """Store the image, count it against the quota and record it.

    Raises ValueError for invalid input, QuotaExhaustedError when the token
    is full, CooldownError when the round's last upload is too recent and
    StorageError when the image cannot be stored. Nothing is counted unless
    the image was stored.
    """
    comment = (comment or "").strip() or None
    validate_upload(
        challenge_number=challenge_number,
        content_type=content_type,
        data=data,
        comment=comment,
    )

    # The token row stays locked until commit, so concurrent uploads of one
    # round are checked against each other's log entries
    await token_service.lock_for_upload(db, token_id)
    remaining = cooldown_remaining(
        await last_upload_at(db, token_id=token_id, session_number=session_number)
    )
    if remaining:
        raise CooldownError(remaining)

    storage = get_storage()
    image_key = generate_storage_key(challenge_number, filename)
    try:
        await storage.save(image_key, data, content_type)
    except Exception as e:
        logger.exception("Storing image for token id=%d failed", token_id)
        raise StorageError() from e

    try:
        await token_service.record_upload(db, token_id)
    except QuotaExhaustedError:
        await storage.delete(image_key)
        raise

    contribution = Contribution(
        challenge_number=challenge_number,
        image_key=image_key,
        content_type=content_type,
        player_name=player_name,
        player_city=player_city,
        comment=comment,
    )
    db.add(contribution)
    await db.flush()

    db.add(UploadLog(
        token_id=token_id,
        contribution_id=contribution.id,
        challenge_number=challenge_number,
        player_name=player_name,
        session_number=session_number,
        uploaded_at=utcnow(),
    ))
    await db.flush()
    logger.info(
        "Upload accepted token id=%d round=%d challenge=%d",
        token_id, session_number, challenge_number,
    )
    return contribution


async def list_session_uploads(
    db: AsyncSession, *, token_id: int, session_number: int
) -> list[tuple[UploadLog, Contribution]]:
    """Uploads made with the token in the given round, newest first."""
    result = await db.execute(
        select(UploadLog, Contribution)
        .join(Contribution, UploadLog.contribution_id == Contribution.id)
        .where(UploadLog.token_id == token_id, UploadLog.session_number == session_number)
        .order_by(UploadLog.uploaded_at.desc(), UploadLog.id.desc())
    )
    return [(log, contribution) for log, contribution in result.all()]


async def _log_for(db: AsyncSession, contribution_id: int) -> UploadLog | None:
    result = await db.execute(
        select(UploadLog).where(UploadLog.contribution_id == contribution_id)
    )
    return result.scalar_one_or_none()


async def _remove(db: AsyncSession, contribution: Contribution, log: UploadLog | None) -> None:
    if log is not None:
        await token_service.decrement_uploads(
            db, log.token_id, session_number=log.session_number
        )
        await db.delete(log)
        await db.flush()
    await db.delete(contribution)
    await db.flush()
    await get_storage().delete(contribution.image_key)


async def delete_own_contribution(
    db: AsyncSession,
    *,
    contribution_id: int,
    token_id: int,
    session_number: int,
) -> None:
    """Delete an upload made with this token in its current round.

    Raises LookupError when the contribution does not exist and
    PermissionError when it belongs to another token or round.
    """
    contribution = await db.get(Contribution, contribution_id)
    if contribution is None:
        raise LookupError("Beitrag nicht gefunden")
    log = await _log_for(db, contribution_id)
    if log is None or log.token_id != token_id or log.session_number != session_number:
        raise PermissionError("Dieser Beitrag gehört nicht zu deinem Werkzeug.")
    await _remove(db, contribution, log)
    logger.info("Contribution id=%d deleted by its uploader", contribution_id)


async def list_contributions(db: AsyncSession, *, limit: int = 100) -> list[Contribution]:
    result = await db.execute(
        select(Contribution).order_by(Contribution.created_at.desc(), Contribution.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def delete_contribution(db: AsyncSession, *, contribution_id: int) -> None:
    """Moderation delete. Raises LookupError if the contribution is unknown."""
    contribution = await db.get(Contribution, contribution_id)
    if contribution is None:
        raise LookupError("Beitrag nicht gefunden")
    await _remove(db, contribution, await _log_for(db, contribution_id))
    logger.info("Contribution id=%d removed by moderation", contribution_id)
