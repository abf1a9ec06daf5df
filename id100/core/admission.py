"""Token admission: decide whether a request may act on behalf of a token.

``TokenGuard`` is a FastAPI dependency. For every guarded request it
resolves the token, the browser's identity and the player it acts for,
then enforces activation, quota, CSRF and the upload cooldown. On success the
route receives an ``UploadContext``; otherwise one of the admission errors
from ``id100.core.errors`` is raised and rendered by the error handlers.

A token has at most one primary browser (the one that claimed it with a
player name). Other browsers get in only through an invitation, which
creates an ``AuthorizedSession`` row for them.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from id100.core.errors import (
    AlreadyBoundError,
    ConflictError,
    CooldownError,
    CSRFMismatchError,
    CSRFMissingError,
    Id100Error,
    InvalidTokenError,
    NameEntryRequired,
    NoTokenError,
    QuotaExhaustedError,
    TokenDeactivatedError,
)
from id100.core.security import constant_time_equals, mask_secret
from id100.core.session import CookieJar
from id100.dependencies import get_db
from id100.models.token import UploadToken
from id100.services import invitation_service, token_service, upload_service

logger = logging.getLogger("id100.admission")

# POST routes whose urlencoded body may carry the token
FORM_TOKEN_ROUTES = frozenset({"/upload/set-name", "/upload/release"})
MAX_FORM_BYTES = 2 * 1024 * 1024

CSRF_HEADER = "X-CSRF-Token"
CSRF_FIELD = "csrf_token"
CSRF_EXEMPT_PATHS = frozenset({"/upload/invite/set-name", "/werkzeug-anfordern"})
UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass
class UploadContext:
    """What a guarded route knows about the admitted request."""

    token_id: int
    token: str
    bag_name: str
    session_number: int
    uploads_remaining: int
    current_player: str | None
    current_player_city: str | None
    session_uuid: str
    csrf_token: str
    is_primary: bool
    upload_token: UploadToken
    jar: CookieJar


class TokenGuard:
    """Admission dependency, configured per route.

    ``enforce_quota`` refuses requests once the token's uploads are used
    up, ``enforce_cooldown`` applies the pause between uploads and
    ``name_submission`` lets an unclaimed token through so the route can
    bind it to the submitted name.
    """

    def __init__(
        self,
        *,
        enforce_quota: bool = False,
        enforce_cooldown: bool = False,
        name_submission: bool = False,
    ):
        self.enforce_quota = enforce_quota
        self.enforce_cooldown = enforce_cooldown
        self.name_submission = name_submission

    async def __call__(self, request: Request, db: AsyncSession = Depends(get_db)) -> UploadContext:
        jar = CookieJar.load(request)
        try:
            ctx = await self._admit(request, db, jar)
        except Id100Error:
            jar.save(request)
            raise
        jar.save(request)
        return ctx

    async def _admit(self, request: Request, db: AsyncSession, jar: CookieJar) -> UploadContext:
        token_string = await _resolve_token_string(request, jar)
        session_id = jar.ensure_identity()
        csrf_token = jar.ensure_csrf()
        request.state.user_id = session_id
        if not token_string:
            raise NoTokenError()

        token = await token_service.find_by_string(db, token_string)
        if token is None:
            if jar.token == token_string:
                jar.forget_token()
            logger.info("Unknown token %s", mask_secret(token_string))
            raise InvalidTokenError()

        _refresh_remembered_view(jar, token)

        authorization = None
        if token.primary_session and token.primary_session != session_id:
            authorization = await invitation_service.find_authorization(
                db, token_id=token.id, session_id=session_id
            )
            if not invitation_service.authorization_is_live(authorization):
                if authorization is not None and authorization.is_active:
                    await invitation_service.expire(db, authorization)
                logger.info(
                    "Session %s refused on token id=%d held by another browser",
                    mask_secret(session_id), token.id,
                )
                raise ConflictError(bag_name=token.bag_name)
            await invitation_service.touch(db, authorization)
            jar.remember_player(authorization.player_name, authorization.player_city)
        elif not self.name_submission:
            token = await self._claim(db, jar, token, session_id, csrf_token)

        if not token.is_active:
            raise TokenDeactivatedError(bag_name=token.bag_name)
        if self.enforce_quota and token.limit_reached:
            raise QuotaExhaustedError(bag_name=token.bag_name)

        if request.method in UNSAFE_METHODS and request.url.path not in CSRF_EXEMPT_PATHS:
            await _check_csrf(request, csrf_token)

        if self.enforce_cooldown:
            last = await upload_service.last_upload_at(
                db, token_id=token.id, session_number=token.total_sessions
            )
            remaining = upload_service.cooldown_remaining(last)
            if remaining:
                raise CooldownError(remaining)

        is_primary = token.primary_session == session_id
        if authorization is not None:
            current_player = authorization.player_name
            current_city = authorization.player_city
        else:
            current_player = token.current_player
            current_city = token.current_player_city
        return UploadContext(
            token_id=token.id,
            token=token.token,
            bag_name=token.bag_name,
            session_number=token.total_sessions,
            uploads_remaining=token.uploads_remaining,
            current_player=current_player,
            current_player_city=current_city,
            session_uuid=session_id,
            csrf_token=csrf_token,
            is_primary=is_primary,
            upload_token=token,
            jar=jar,
        )

    async def _claim(
        self,
        db: AsyncSession,
        jar: CookieJar,
        token: UploadToken,
        session_id: str,
        csrf_token: str,
    ) -> UploadToken:
        """Make sure this browser is the token's primary, binding it if possible."""
        if token.primary_session == session_id:
            if not jar.player_name:
                jar.remember_player(token.current_player, token.current_player_city)
            return token

        if token.current_player:
            # Assigned by an admin, not yet opened in any browser
            name, city = token.current_player, token.current_player_city
        elif jar.player_name:
            name, city = jar.player_name, jar.player_city
        else:
            raise _name_entry(token, csrf_token)
        if not token.is_active:
            raise TokenDeactivatedError(bag_name=token.bag_name)

        try:
            token = await token_service.bind_primary(
                db, token.id, session_id=session_id, player_name=name, player_city=city
            )
        except AlreadyBoundError:
            jar.forget_player()
            raise _name_entry(token, csrf_token)
        jar.remember_player(name, city)
        jar.remember_round(token.total_sessions, token.session_started_at)
        return token


def _name_entry(token: UploadToken, csrf_token: str) -> NameEntryRequired:
    return NameEntryRequired(
        token=token.token,
        bag_name=token.bag_name,
        csrf_token=csrf_token,
    )


def _refresh_remembered_view(jar: CookieJar, token: UploadToken) -> None:
    """Drop the remembered player when the token moved on since this browser saw it."""
    if jar.token_id != token.id:
        jar.forget_token()
    elif not token_service.is_stale(
        token, session_number=jar.session_number, started_at=jar.session_started_at
    ):
        return
    else:
        jar.forget_player()
    jar.remember_token(token=token.token, token_id=token.id, bag_name=token.bag_name)
    jar.remember_round(token.total_sessions, token.session_started_at)


async def _resolve_token_string(request: Request, jar: CookieJar) -> str | None:
    token = request.query_params.get("token")
    if token:
        return token
    token = await _token_from_form(request)
    if token:
        return token
    return jar.token


async def _token_from_form(request: Request) -> str | None:
    if request.method != "POST" or request.url.path not in FORM_TOKEN_ROUTES:
        return None
    if not request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        return None
    length = request.headers.get("content-length", "")
    if not length.isdigit() or int(length) > MAX_FORM_BYTES:
        return None
    form = await request.form()
    value = form.get("token")
    return value if isinstance(value, str) and value else None


async def _check_csrf(request: Request, expected: str) -> None:
    submitted = request.headers.get(CSRF_HEADER)
    if not submitted:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            form = await request.form()
            value = form.get(CSRF_FIELD)
            submitted = value if isinstance(value, str) else None
    if not submitted:
        raise CSRFMissingError()
    if not constant_time_equals(submitted, expected):
        raise CSRFMismatchError()
