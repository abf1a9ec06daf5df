import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from id100.services import bag_request_service
from flow_helpers import field_of, template_of


@pytest.mark.asyncio
async def test_home(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert template_of(resp) == "home"
    assert "zurückgegeben" not in resp.text

    released = await client.get("/", params={"released": 1})
    assert field_of(released, "message") == "Danke! Du hast das Werkzeug zurückgegeben."


@pytest.mark.asyncio
async def test_request_bag_json(client: AsyncClient, db_session: AsyncSession):
    resp = await client.post("/werkzeug-anfordern", json={"email": " nina@example.org "})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    requests = await bag_request_service.list_requests(db_session)
    assert [r.email for r in requests] == ["nina@example.org"]
    assert requests[0].handled is False


@pytest.mark.asyncio
async def test_request_bag_form(client: AsyncClient, db_session: AsyncSession):
    resp = await client.post("/werkzeug-anfordern", data={"email": "tom@example.org"})
    assert resp.status_code == 200
    assert len(await bag_request_service.list_requests(db_session)) == 1


@pytest.mark.asyncio
async def test_request_bag_invalid(client: AsyncClient, db_session: AsyncSession):
    for kwargs in (
        {"json": {"email": "no-at-sign"}},
        {"json": ["a@example.org"]},
        {"data": {}},
        {"content": b"{not json", "headers": {"content-type": "application/json"}},
    ):
        resp = await client.post("/werkzeug-anfordern", **kwargs)
        assert resp.status_code == 400, kwargs
    assert await bag_request_service.list_requests(db_session) == []
