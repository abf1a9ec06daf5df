"""Public "request a tool" submissions and their admin follow-up."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from id100.models.bag_request import BagRequest

logger = logging.getLogger("id100.bag_requests")

MAX_EMAIL_LENGTH = 320


async def create(db: AsyncSession, *, email: str) -> BagRequest:
    email = (email or "").strip()
    if "@" not in email or len(email) > MAX_EMAIL_LENGTH:
        raise ValueError("Bitte gib eine gültige E-Mail-Adresse an.")
    request = BagRequest(email=email, handled=False)
    db.add(request)
    await db.flush()
    logger.info("Bag request id=%d received", request.id)
    return request


async def list_requests(db: AsyncSession, *, handled: bool | None = None) -> list[BagRequest]:
    stmt = select(BagRequest).order_by(BagRequest.created_at.desc(), BagRequest.id.desc())
    if handled is not None:
        stmt = stmt.where(BagRequest.handled.is_(handled))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def mark_handled(db: AsyncSession, request_id: int) -> BagRequest:
    request = await db.get(BagRequest, request_id)
    if request is None:
        raise ValueError("Bag request not found")
    request.handled = True
    await db.flush()
    return request
