"""Admin routes: token lifecycle, QR placards, moderation, tool requests.

All routes require HTTP Basic admin credentials.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.auth import require_admin
from id100.core.security import sanitize_filename
from id100.dependencies import get_db
from id100.schemas.bag_request import BagRequestRead
from id100.schemas.contribution import ContributionRead
from id100.schemas.token import TokenAssign, TokenCreate, TokenCreated, TokenQuotaUpdate, TokenRead
from id100.services import bag_request_service, qr_service, token_service, upload_service

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

QR_MEDIA_TYPES = {"png": "image/png", "svg": "image/svg+xml"}


def _ok() -> dict:
    return {"status": "success"}


def _require_row(rows: int) -> None:
    if rows == 0:
        raise HTTPException(status_code=404, detail="Token not found")


@router.get("/tokens", response_model=list[TokenRead])
async def list_tokens(db: AsyncSession = Depends(get_db)):
    tokens = await token_service.list_all(db)
    return [TokenRead.model_validate(t) for t in tokens]


@router.post("/tokens", response_model=TokenCreated, status_code=201)
async def create_token(body: TokenCreate, db: AsyncSession = Depends(get_db)):
    """Create a token for a new tool. The QR code points at its upload page."""
    try:
        token = await token_service.create(db, bag_name=body.bag_name, max_uploads=body.max_uploads)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TokenCreated(
        token_id=token.id,
        token=token.token,
        bag_name=token.bag_name,
        upload_url=qr_service.upload_url(token.token),
        qr_url=f"/admin/tokens/{token.id}/qr",
    )


@router.post("/tokens/{token_id}/assign")
async def assign_token(token_id: int, body: TokenAssign, db: AsyncSession = Depends(get_db)):
    player_name = body.player_name.strip()
    if not player_name:
        raise HTTPException(status_code=400, detail="player_name is required")
    _require_row(await token_service.assign(db, token_id, player_name=player_name))
    return _ok()


@router.post("/tokens/{token_id}/reset")
async def reset_token(token_id: int, db: AsyncSession = Depends(get_db)):
    """Start a new round for the tool."""
    _require_row(await token_service.reset(db, token_id))
    return _ok()


@router.post("/tokens/{token_id}/deactivate")
async def deactivate_token(token_id: int, db: AsyncSession = Depends(get_db)):
    _require_row(await token_service.deactivate(db, token_id))
    return _ok()


@router.post("/tokens/{token_id}/quota")
async def set_token_quota(token_id: int, body: TokenQuotaUpdate, db: AsyncSession = Depends(get_db)):
    try:
        rows = await token_service.set_quota(db, token_id, max_uploads=body.max_uploads)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _require_row(rows)
    return _ok()


@router.get("/tokens/{token_id}/qr")
async def token_qr(token_id: int, format: str = "png", db: AsyncSession = Depends(get_db)):
    """Download the tool's QR code as PNG or as an SVG placard."""
    if format not in QR_MEDIA_TYPES:
        raise HTTPException(status_code=400, detail="format must be png or svg")
    token = await token_service.get(db, token_id)
    if token is None:
        raise HTTPException(status_code=404, detail="Token not found")
    payload = qr_service.upload_url(token.token)
    if format == "svg":
        content = qr_service.render_svg(payload, label=token.bag_name)
    else:
        content = qr_service.render_png(payload)
    filename = sanitize_filename(f"qr_{token.bag_name or token.id}.{format}")
    return Response(
        content=content,
        media_type=QR_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/contributions", response_model=list[ContributionRead])
async def list_contributions(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    contributions = await upload_service.list_contributions(db, limit=limit)
    return [ContributionRead.model_validate(c) for c in contributions]


@router.delete("/contributions/{contribution_id}", status_code=204)
async def delete_contribution(contribution_id: int, db: AsyncSession = Depends(get_db)):
    """Remove a contribution, its image and its upload count."""
    try:
        await upload_service.delete_contribution(db, contribution_id=contribution_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Contribution not found")


@router.get("/bag-requests", response_model=list[BagRequestRead])
async def list_bag_requests(status: str = "open", db: AsyncSession = Depends(get_db)):
    filters = {"open": False, "handled": True, "all": None}
    if status not in filters:
        raise HTTPException(status_code=400, detail="status must be open, handled or all")
    requests = await bag_request_service.list_requests(db, handled=filters[status])
    return [BagRequestRead.model_validate(r) for r in requests]


@router.post("/bag-requests/{request_id}/complete", response_model=BagRequestRead)
async def complete_bag_request(request_id: int, db: AsyncSession = Depends(get_db)):
    try:
        request = await bag_request_service.mark_handled(db, request_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Bag request not found")
    return BagRequestRead.model_validate(request)
