"""Participant upload routes: upload page, photo upload, name entry, release.

Every route here is guarded by ``TokenGuard``; see ``id100.core.admission``.
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.admission import TokenGuard, UploadContext
from id100.core.errors import AlreadyBoundError, ConflictError
from id100.core.pages import render_page
from id100.core.security import MAX_PLAYER_CITY_LENGTH, MAX_PLAYER_NAME_LENGTH, clean_text
from id100.dependencies import get_db
from id100.services import token_service, upload_service

logger = logging.getLogger("id100.upload")

router = APIRouter(prefix="/upload", tags=["upload"])


def upload_page_url(token: str, **params) -> str:
    return "/upload?" + urlencode({**params, "token": token})


def check_player_form(
    player_name: str | None, player_city: str | None, agree_privacy: str | None
) -> tuple[str, str, str | None]:
    """Clean the name form. Returns (name, city, error message or None)."""
    name = clean_text(player_name, MAX_PLAYER_NAME_LENGTH + 1)
    city = clean_text(player_city, MAX_PLAYER_CITY_LENGTH + 1)
    if not name:
        return name, city, "Bitte gib deinen Namen ein."
    if len(name) > MAX_PLAYER_NAME_LENGTH:
        return name, city, f"Der Name darf höchstens {MAX_PLAYER_NAME_LENGTH} Zeichen lang sein."
    if len(city) > MAX_PLAYER_CITY_LENGTH:
        return name, city, f"Die Stadt darf höchstens {MAX_PLAYER_CITY_LENGTH} Zeichen lang sein."
    if not agree_privacy:
        return name, city, "Bitte stimme der Datenschutzerklärung zu."
    return name, city, None


@router.get("")
async def upload_page(
    uploaded: int | None = None,
    ctx: UploadContext = Depends(TokenGuard(enforce_quota=True)),
    db: AsyncSession = Depends(get_db),
):
    """Upload form plus the uploads made with this token in the current round."""
    uploads = await upload_service.list_session_uploads(
        db, token_id=ctx.token_id, session_number=ctx.session_number
    )
    return render_page(
        "upload",
        message="Danke! Dein Foto ist angekommen." if uploaded else None,
        csrf_token=ctx.csrf_token,
        token=ctx.token,
        bag_name=ctx.bag_name,
        current_player=ctx.current_player,
        current_player_city=ctx.current_player_city,
        session_number=ctx.session_number,
        uploads_remaining=ctx.uploads_remaining,
        is_primary="ja" if ctx.is_primary else "nein",
        uploads=[
            {
                "id": contribution.id,
                "challenge": log.challenge_number,
                "player": log.player_name,
                "comment": contribution.comment,
            }
            for log, contribution in uploads
        ],
    )


@router.post("")
async def upload_photo(
    derive_number: int = Form(...),
    image: UploadFile = File(...),
    comment: str | None = Form(None),
    ctx: UploadContext = Depends(TokenGuard(enforce_quota=True, enforce_cooldown=True)),
    db: AsyncSession = Depends(get_db),
):
    """Accept one photo for a challenge and send the player back to the form."""
    data = await image.read()
    try:
        await upload_service.accept_upload(
            db,
            token_id=ctx.token_id,
            session_number=ctx.session_number,
            player_name=ctx.current_player or "",
            player_city=ctx.current_player_city,
            challenge_number=derive_number,
            filename=image.filename or "upload",
            content_type=image.content_type or "application/octet-stream",
            data=data,
            comment=comment,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RedirectResponse(upload_page_url(ctx.token, uploaded=1), status_code=303)


@router.post("/set-name")
async def set_player_name(
    request: Request,
    player_name: str | None = Form(None),
    player_city: str | None = Form(None),
    agree_privacy: str | None = Form(None),
    ctx: UploadContext = Depends(TokenGuard(name_submission=True)),
    db: AsyncSession = Depends(get_db),
):
    """Claim the token for a player name, making this browser the primary."""
    name, city, form_error = check_player_form(player_name, player_city, agree_privacy)
    if form_error:
        return render_page(
            "enter_name",
            status_code=400,
            message=form_error,
            csrf_token=ctx.csrf_token,
            token=ctx.token,
            bag_name=ctx.bag_name,
        )

    try:
        token = await token_service.bind_primary(
            db, ctx.token_id, session_id=ctx.session_uuid, player_name=name, player_city=city
        )
    except AlreadyBoundError:
        raise ConflictError(bag_name=ctx.bag_name)

    jar = ctx.jar
    jar.remember_player(name, city)
    jar.remember_round(token.total_sessions, token.session_started_at)
    jar.save(request)
    return RedirectResponse(upload_page_url(ctx.token), status_code=303)


@router.post("/release")
async def release_bag(
    request: Request,
    ctx: UploadContext = Depends(TokenGuard()),
    db: AsyncSession = Depends(get_db),
):
    """The primary hands the tool back; all its sessions and invitations end."""
    await token_service.release(db, ctx.token_id, session_id=ctx.session_uuid)
    ctx.jar.forget_token()
    ctx.jar.save(request)
    return RedirectResponse("/?released=1", status_code=303)


@router.post("/contributions/{contribution_id}/delete")
async def delete_contribution(
    contribution_id: int,
    ctx: UploadContext = Depends(TokenGuard()),
    db: AsyncSession = Depends(get_db),
):
    """Delete one of this token's uploads from the current round."""
    try:
        await upload_service.delete_own_contribution(
            db,
            contribution_id=contribution_id,
            token_id=ctx.token_id,
            session_number=ctx.session_number,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="Beitrag nicht gefunden")
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return {"status": "success"}
