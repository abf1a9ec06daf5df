"""Session sharing: invitations for extra browsers and their management.

Any admitted browser of a token can generate invitation links. Opening one
in another browser (after entering a name) admits that browser as a
secondary session. Every admitted browser can list the sessions; only the
primary can revoke them.
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from id100.config import settings
from id100.core.admission import TokenGuard, UploadContext
from id100.core.errors import (
    AlreadyPrimaryError,
    Id100Error,
    InvitationCodeMissingError,
    InvitationNotFoundError,
    TokenDeactivatedError,
)
from id100.core.pages import render_page
from id100.core.session import CookieJar
from id100.dependencies import get_db
from id100.models.base import as_utc
from id100.routers.upload import check_player_form, upload_page_url
from id100.schemas.session import InvitationCreated, SessionList, SessionRead
from id100.services import invitation_service, token_service

logger = logging.getLogger("id100.invitations")

router = APIRouter(prefix="/upload", tags=["sessions"])


def accept_url(code: str) -> str:
    return "/upload/accept-invite?" + urlencode({"code": code})


@router.get("/sessions", response_model=SessionList)
async def list_sessions(
    ctx: UploadContext = Depends(TokenGuard()),
    db: AsyncSession = Depends(get_db),
):
    """The primary and all live secondary sessions of the token."""
    token = ctx.upload_token
    sessions = []
    if token.primary_session:
        sessions.append(SessionRead(
            session_id=token.primary_session,
            player_name=token.current_player,
            player_city=token.current_player_city,
            is_primary=True,
            is_current=token.primary_session == ctx.session_uuid,
            created_at=as_utc(token.session_started_at),
        ))
    for authorization in await invitation_service.list_sessions(db, token_id=ctx.token_id):
        sessions.append(SessionRead(
            session_id=authorization.session_identifier,
            player_name=authorization.player_name,
            player_city=authorization.player_city,
            is_primary=False,
            is_current=authorization.session_identifier == ctx.session_uuid,
            created_at=as_utc(authorization.created_at),
            last_activity_at=as_utc(authorization.last_activity_at),
            expires_at=as_utc(authorization.expires_at),
        ))
    return SessionList(sessions=sessions, current_player=ctx.current_player)


@router.post("/sessions/{session_id}/revoke")
async def revoke_session(
    session_id: str,
    ctx: UploadContext = Depends(TokenGuard()),
    db: AsyncSession = Depends(get_db),
):
    """Primary-only: end a secondary session."""
    if not ctx.is_primary:
        raise HTTPException(status_code=403, detail="Nur der Hauptspieler kann Sitzungen beenden")
    if session_id == ctx.session_uuid:
        raise HTTPException(status_code=400, detail="Die eigene Sitzung kann nicht beendet werden")
    rows = await invitation_service.revoke_session(db, token_id=ctx.token_id, session_id=session_id)
    if rows == 0:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "success", "message": "Session revoked"}


@router.post("/invitations/generate", response_model=InvitationCreated)
async def generate_invitation(
    hours: int | None = None,
    ctx: UploadContext = Depends(TokenGuard()),
    db: AsyncSession = Depends(get_db),
):
    """Create a single-use invitation link. Open to the primary and to invited sessions."""
    invitation = await invitation_service.issue(
        db, token_id=ctx.token_id, issuer_session=ctx.session_uuid, ttl_hours=hours
    )
    return InvitationCreated(
        code=invitation.code,
        invitation_url=settings.public_base_url + accept_url(invitation.code),
        expires_at=as_utc(invitation.expires_at),
    )


@router.get("/accept-invite")
async def accept_invitation(
    request: Request,
    code: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Admit this browser to the invited token, asking for a name first if needed."""
    jar = CookieJar.load(request)
    session_id = jar.ensure_identity()
    csrf_token = jar.ensure_csrf()
    request.state.user_id = session_id
    try:
        if not code:
            raise InvitationCodeMissingError()
        response = await _accept(db, jar, code, session_id, csrf_token)
    except Id100Error:
        jar.save(request)
        raise
    jar.save(request)
    return response


async def _accept(db: AsyncSession, jar: CookieJar, code: str, session_id: str, csrf_token: str):
    invitation = await invitation_service.lookup(db, code)
    if invitation is None:
        raise InvitationNotFoundError()
    token = await token_service.get(db, invitation.token_id)
    if token.primary_session == session_id:
        raise AlreadyPrimaryError()
    if not token.is_active:
        raise TokenDeactivatedError(bag_name=token.bag_name)

    existing = await invitation_service.find_authorization(
        db, token_id=token.id, session_id=session_id
    )
    if invitation_service.authorization_is_live(existing):
        name, city = existing.player_name, existing.player_city
    else:
        invitation_service.ensure_usable(invitation)
        if not jar.player_name:
            return render_page(
                "enter_name_invitation",
                csrf_token=csrf_token,
                invitation_code=code,
                bag_name=token.bag_name,
            )
        name, city = jar.player_name, jar.player_city

    await invitation_service.consume(
        db, code, acceptor_session=session_id, player_name=name, player_city=city
    )
    jar.forget_token()
    jar.remember_token(token=token.token, token_id=token.id, bag_name=token.bag_name)
    jar.remember_player(name, city)
    jar.remember_round(token.total_sessions, token.session_started_at)
    return RedirectResponse(upload_page_url(token.token), status_code=303)


@router.post("/invite/set-name")
async def set_invitation_name(
    request: Request,
    invitation_code: str | None = Form(None),
    player_name: str | None = Form(None),
    player_city: str | None = Form(None),
    agree_privacy: str | None = Form(None),
):
    """Remember the invited player's name, then resume accepting the invitation."""
    jar = CookieJar.load(request)
    csrf_token = jar.ensure_csrf()
    jar.ensure_identity()
    name, city, form_error = check_player_form(player_name, player_city, agree_privacy)
    if not invitation_code:
        form_error = "Kein Einladungscode angegeben."
    if form_error:
        jar.save(request)
        return render_page(
            "enter_name_invitation",
            status_code=400,
            message=form_error,
            csrf_token=csrf_token,
            invitation_code=invitation_code,
        )

    jar.remember_player(name, city)
    jar.save(request)
    return RedirectResponse(accept_url(invitation_code), status_code=303)
