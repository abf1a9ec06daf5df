"""Session sharing through invitations: /upload/invitations, accept-invite, sessions."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from id100.models.base import as_utc, utcnow
from id100.models.invitation import SessionInvitation
from id100.services import token_service
from flow_helpers import (
    accept,
    claim,
    csrf_of,
    field_of,
    invite,
    make_token,
    reload,
    template_of,
    upload,
)


@pytest.mark.asyncio
async def test_generate_invitation(client: AsyncClient, db_session: AsyncSession):
    token = await make_token(db_session)
    csrf = await claim(client, token.token)

    data = await invite(client, csrf, hours=500)
    assert len(data["code"]) == 32
    assert data["invitation_url"] == f"http://test/upload/accept-invite?code={data['code']}"
    expires_at = (await db_session.execute(
        select(SessionInvitation.expires_at).where(SessionInvitation.code == data["code"])
    )).scalar_one()
    remaining = as_utc(expires_at) - utcnow()
    assert timedelta(hours=167) < remaining <= timedelta(hours=168)


@pytest.mark.asyncio
async def test_generate_invitation_requires_csrf(client: AsyncClient, db_session: AsyncSession):
    token = await make_token(db_session)
    await claim(client, token.token)
    resp = await client.post("/upload/invitations/generate")
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_invitation_admits_second_browser(
    client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession
):
    """Scenario: the primary invites a friend who then uploads under their own name."""
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    code = (await invite(client, csrf))["code"]

    first = await other_client.get("/upload/accept-invite", params={"code": code})
    assert first.status_code == 200
    assert template_of(first) == "enter_name_invitation"

    resp = await accept(other_client, code, name="Bob", city="Hamburg")
    assert resp.status_code == 303
    assert resp.headers["location"] == f"/upload?token={token.token}"

    page = await other_client.get(resp.headers["location"])
    assert page.status_code == 200
    assert template_of(page) == "upload"
    assert field_of(page, "current_player") == "Bob"
    assert field_of(page, "is_primary") == "nein"

    guest_csrf = csrf_of(page)
    assert (await upload(other_client, guest_csrf, derive_number=9)).status_code == 303
    assert (await reload(db_session, token.id)).total_uploads == 1

    # Accepting again from the same browser does not spend the invitation twice
    again = await other_client.get("/upload/accept-invite", params={"code": code})
    assert again.status_code == 303


@pytest.mark.asyncio
async def test_invitation_is_single_use(
    client: AsyncClient,
    other_client: AsyncClient,
    third_client: AsyncClient,
    db_session: AsyncSession,
):
    token = await make_token(db_session)
    csrf = await claim(client, token.token)
    code = (await invite(client, csrf))["code"]
    assert (await accept(other_client, code)).status_code == 303

    resp = await accept(third_client, code, name="Eve")
    assert resp.status_code == 403
    assert template_of(resp) == "invitation_invalid"
    assert "bereits verwendet" in resp.text

    # Eve still cannot use the tool
    assert (await third_client.get("/upload", params={"token": token.token})).status_code == 409


@pytest.mark.asyncio
async def test_accept_invite_errors(client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession):
    token = await make_token(db_session)
    csrf = await claim(client, token.token)

    no_code = await other_client.get("/upload/accept-invite")
    assert no_code.status_code == 400

    unknown = await other_client.get("/upload/accept-invite", params={"code": "nope"})
    assert unknown.status_code == 404
    assert template_of(unknown) == "invitation_invalid"

    expired_code = (await invite(client, csrf))["code"]
    await db_session.execute(
        update(SessionInvitation)
        .where(SessionInvitation.code == expired_code)
        .values(expires_at=utcnow() - timedelta(minutes=1))
    )
    expired = await other_client.get("/upload/accept-invite", params={"code": expired_code})
    assert expired.status_code == 403
    assert "abgelaufen" in expired.text

    own_code = (await invite(client, csrf))["code"]
    own = await client.get("/upload/accept-invite", params={"code": own_code})
    assert own.status_code == 400


@pytest.mark.asyncio
async def test_invite_set_name_validation(other_client: AsyncClient):
    resp = await other_client.post(
        "/upload/invite/set-name",
        data={"invitation_code": "abc", "player_name": "Bob"},
    )
    assert resp.status_code == 400
    assert template_of(resp) == "enter_name_invitation"

    resp = await other_client.post(
        "/upload/invite/set-name",
        data={"player_name": "Bob", "agree_privacy": "on"},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_list_sessions(client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession):
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    code = (await invite(client, csrf))["code"]
    await accept(other_client, code, name="Bob")

    resp = await client.get("/upload/sessions")
    assert resp.status_code == 200
    data = resp.json()
    assert data["current_player"] == "Alice"
    assert [(s["player_name"], s["is_primary"], s["is_current"]) for s in data["sessions"]] == [
        ("Alice", True, True),
        ("Bob", False, False),
    ]

    guest_view = (await other_client.get("/upload/sessions")).json()
    assert guest_view["current_player"] == "Bob"
    assert [s["is_current"] for s in guest_view["sessions"]] == [False, True]


@pytest.mark.asyncio
async def test_revoke_secondary(client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession):
    """Scenario: the primary revokes a friend, who is then locked out."""
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    code = (await invite(client, csrf))["code"]
    await accept(other_client, code, name="Bob")

    sessions = (await client.get("/upload/sessions")).json()["sessions"]
    primary_id = sessions[0]["session_id"]
    guest_id = sessions[1]["session_id"]

    guest_page = await other_client.get("/upload")
    guest_csrf = csrf_of(guest_page)
    forbidden = await other_client.post(
        f"/upload/sessions/{primary_id}/revoke", headers={"X-CSRF-Token": guest_csrf}
    )
    assert forbidden.status_code == 403

    self_revoke = await client.post(
        f"/upload/sessions/{primary_id}/revoke", headers={"X-CSRF-Token": csrf}
    )
    assert self_revoke.status_code == 400

    resp = await client.post(f"/upload/sessions/{guest_id}/revoke", headers={"X-CSRF-Token": csrf})
    assert resp.status_code == 200
    assert resp.json() == {"status": "success", "message": "Session revoked"}

    locked_out = await other_client.get("/upload")
    assert locked_out.status_code == 409

    # The old invitation cannot bring the revoked browser back
    retry = await other_client.get("/upload/accept-invite", params={"code": code})
    assert retry.status_code == 403

    unknown = await client.post("/upload/sessions/unknown/revoke", headers={"X-CSRF-Token": csrf})
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_invited_session_can_invite(
    client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession
):
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    await accept(other_client, (await invite(client, csrf))["code"], name="Bob")
    guest_csrf = csrf_of(await other_client.get("/upload"))

    data = await invite(other_client, guest_csrf)
    assert len(data["code"]) == 32
    issued_by = (await db_session.execute(
        select(SessionInvitation.token_id).where(SessionInvitation.code == data["code"])
    )).scalar_one()
    assert issued_by == token.id


@pytest.mark.asyncio
async def test_accept_invite_on_deactivated_token(
    client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession
):
    token = await make_token(db_session)
    csrf = await claim(client, token.token)
    code = (await invite(client, csrf))["code"]
    await token_service.deactivate(db_session, token.id)

    resp = await other_client.get("/upload/accept-invite", params={"code": code})
    assert resp.status_code == 403
    assert template_of(resp) == "token_deactivated"
    use_count = (await db_session.execute(
        select(SessionInvitation.use_count).where(SessionInvitation.code == code)
    )).scalar_one()
    assert use_count == 0


@pytest.mark.asyncio
async def test_assign_keeps_primary_and_invited_sessions(
    client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession
):
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    primary = (await reload(db_session, token.id)).primary_session
    await accept(other_client, (await invite(client, csrf))["code"], name="Bob")

    await token_service.assign(db_session, token.id, player_name="Carol")

    guest = await other_client.get("/upload")
    assert guest.status_code == 200
    assert field_of(guest, "current_player") == "Bob"
    assert field_of(guest, "is_primary") == "nein"

    refreshed = await reload(db_session, token.id)
    assert refreshed.primary_session == primary
    assert refreshed.current_player == "Carol"
    assert refreshed.current_player_city == "Berlin"

    own = await client.get("/upload")
    assert own.status_code == 200
    assert template_of(own) == "upload"
    assert field_of(own, "current_player") == "Carol"


@pytest.mark.asyncio
async def test_release_ends_all_sessions(
    client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession
):
    """Scenario: releasing the bag logs out friends and voids open invitations."""
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    await accept(other_client, (await invite(client, csrf))["code"], name="Bob")
    open_code = (await invite(client, csrf))["code"]

    guest_csrf = csrf_of(await other_client.get("/upload"))
    refused = await other_client.post("/upload/release", data={"csrf_token": guest_csrf})
    assert refused.status_code == 403

    assert (await client.post("/upload/release", data={"csrf_token": csrf})).status_code == 303

    # Bob's remembered view is stale: the tool is free again and asks for a name
    page = await other_client.get("/upload")
    assert page.status_code == 200
    assert template_of(page) == "enter_name"

    revoked = await other_client.get("/upload/accept-invite", params={"code": open_code})
    assert revoked.status_code == 403
    assert "zurückgezogen" in revoked.text


@pytest.mark.asyncio
async def test_reset_revokes_invited_sessions(
    client: AsyncClient, other_client: AsyncClient, db_session: AsyncSession
):
    token = await make_token(db_session)
    csrf = await claim(client, token.token, name="Alice")
    await accept(other_client, (await invite(client, csrf))["code"], name="Bob")

    await token_service.reset(db_session, token.id)
    await claim(client, token.token, name="Alice")

    resp = await other_client.get("/upload")
    assert resp.status_code == 409
