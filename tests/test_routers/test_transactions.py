"""Request transactions through the production get_db: what is kept, what is undone."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from id100.models.authorized_session import AuthorizedSession
from id100.models.base import utcnow
from id100.models.token import UploadToken
from id100.models.upload_log import UploadLog
from id100.services import upload_service
from flow_helpers import accept, claim, invite, make_token, upload


async def _count(factory: async_sessionmaker, model) -> int:
    async with factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_upload_is_committed(committing_client: AsyncClient, session_factory: async_sessionmaker):
    async with session_factory() as db:
        token = await make_token(db)
    csrf = await claim(committing_client, token.token, name="Alice")

    assert (await upload(committing_client, csrf)).status_code == 303

    async with session_factory() as db:
        stored = await db.get(UploadToken, token.id)
        assert stored.total_uploads == 1
        assert stored.current_player == "Alice"
    assert await _count(session_factory, UploadLog) == 1


@pytest.mark.asyncio
async def test_failure_after_counting_rolls_back(
    committing_client: AsyncClient, session_factory: async_sessionmaker, monkeypatch
):
    """An upload that fails after counting leaves neither the count nor a log entry behind."""
    async with session_factory() as db:
        token = await make_token(db)
    csrf = await claim(committing_client, token.token)

    def _broken_contribution(**kwargs):
        raise RuntimeError("contributions table unavailable")

    monkeypatch.setattr(upload_service, "Contribution", _broken_contribution)
    resp = await upload(committing_client, csrf)
    assert resp.status_code == 500

    async with session_factory() as db:
        stored = await db.get(UploadToken, token.id)
        assert stored.total_uploads == 0
        assert stored.primary_session is not None
    assert await _count(session_factory, UploadLog) == 0


@pytest.mark.asyncio
async def test_expired_invited_session_is_deactivated_on_refusal(
    committing_client: AsyncClient,
    committing_other_client: AsyncClient,
    session_factory: async_sessionmaker,
):
    """The conflict page is shown, and the lapsed authorization is switched off for good."""
    async with session_factory() as db:
        token = await make_token(db)
    csrf = await claim(committing_client, token.token, name="Alice")
    code = (await invite(committing_client, csrf))["code"]
    assert (await accept(committing_other_client, code, name="Bob")).status_code == 303

    async with session_factory() as db:
        await db.execute(
            update(AuthorizedSession).values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await db.commit()

    resp = await committing_other_client.get("/upload")
    assert resp.status_code == 409

    async with session_factory() as db:
        authorization = (await db.execute(select(AuthorizedSession))).scalar_one()
        assert authorization.is_active is False
