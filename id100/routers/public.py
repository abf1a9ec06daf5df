"""Public routes: landing page and the "request a tool" form."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.pages import render_page
from id100.dependencies import get_db
from id100.services import bag_request_service

router = APIRouter(tags=["public"])


@router.get("/")
async def home(released: int | None = None):
    message = "Danke! Du hast das Werkzeug zurückgegeben." if released else None
    return render_page("home", message=message)


@router.post("/werkzeug-anfordern")
async def request_bag(request: Request, db: AsyncSession = Depends(get_db)):
    """Accepts ``email`` as JSON or as a form field."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Ungültige Anfrage")
        email = payload.get("email") if isinstance(payload, dict) else None
    else:
        form = await request.form()
        email = form.get("email")
    if not isinstance(email, str):
        email = ""
    try:
        await bag_request_service.create(db, email=email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok"}
