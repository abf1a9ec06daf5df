"""Domain errors and the handlers that turn them into responses.

Participant-facing failures render an HTML page keyed by template name.
Upload cooldown answers with JSON so the upload form can show a countdown.
API-style failures (admin, session management) use ``HTTPException`` and
share one JSON error format.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from id100.core.pages import render_page

logger = logging.getLogger("id100.errors")


class MisConfigurationError(RuntimeError):
    """The service cannot run with the current configuration."""


class Id100Error(Exception):
    """Base for errors that map onto a participant-facing response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    template = "server_error"
    message: str | None = None
    # Whether the request's database work is kept when this error surfaces.
    commit_on_raise = True

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message or self.template)


# -- admission ---------------------------------------------------------------

class NoTokenError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "access_denied"
    message = "Kein Token angegeben. Bitte scanne den QR-Code deines Werkzeugs."


class InvalidTokenError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "invalid_token"


class TokenDeactivatedError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "token_deactivated"


class QuotaExhaustedError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "limit_reached"


class ConflictError(Id100Error):
    status_code = status.HTTP_409_CONFLICT
    template = "session_conflict"


class AlreadyBoundError(ConflictError):
    """Another session won the race to become the token's primary."""


class NameEntryRequired(Id100Error):
    """Not an error for the player: show the name form."""

    status_code = status.HTTP_200_OK
    template = "enter_name"


class CooldownError(Id100Error):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Bitte warte zwischen Uploads"

    def __init__(self, remaining_seconds: int):
        super().__init__()
        self.remaining_seconds = remaining_seconds


class CSRFError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "access_denied"
    message = "Die Anfrage konnte nicht bestätigt werden. Bitte lade die Seite neu."


class CSRFMissingError(CSRFError):
    pass


class CSRFMismatchError(CSRFError):
    pass


class NotPrimaryError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "access_denied"
    message = "Nur der Hauptspieler darf das."


# -- invitations -------------------------------------------------------------

class InvitationError(Id100Error):
    status_code = status.HTTP_403_FORBIDDEN
    template = "invitation_invalid"


class InvitationCodeMissingError(InvitationError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Kein Einladungscode angegeben."


class InvitationNotFoundError(InvitationError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Diese Einladung existiert nicht."


class InvitationRevokedError(InvitationError):
    message = "Diese Einladung wurde zurückgezogen."


class InvitationExpiredError(InvitationError):
    message = "Diese Einladung ist abgelaufen."


class InvitationExhaustedError(InvitationError):
    message = "Diese Einladung wurde bereits verwendet."


class AlreadyPrimaryError(InvitationError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Du bist bereits der Hauptspieler dieses Werkzeugs."


# -- infrastructure ----------------------------------------------------------

class StorageError(Id100Error):
    commit_on_raise = False
    message = "Das Foto konnte nicht gespeichert werden. Bitte versuche es erneut."


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(Id100Error)
    async def id100_error_handler(request: Request, exc: Id100Error):
        request_id = getattr(request.state, "request_id", None)
        if isinstance(exc, CooldownError):
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.message, "remaining_seconds": exc.remaining_seconds},
            )
        if isinstance(exc, CSRFError):
            logger.warning(
                "request_id=%s csrf rejected: %s path=%s",
                request_id, type(exc).__name__, request.url.path,
            )
        elif exc.status_code >= 500:
            logger.error("request_id=%s %s: %s", request_id, type(exc).__name__, exc)
        return render_page(
            exc.template,
            status_code=exc.status_code,
            message=exc.message,
            **exc.context,
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        request_id = getattr(request.state, "request_id", None)
        logger.exception("request_id=%s database error on %s", request_id, request.url.path)
        return render_page("server_error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "status_code": exc.status_code,
                "detail": exc.detail,
                "request_id": request_id,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": True,
                "status_code": 400,
                "detail": "Ungültige Eingabe",
                "errors": jsonable_encoder(exc.errors()),
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.exception("request_id=%s unhandled error on %s", request_id, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "status_code": 500,
                "detail": "Internal server error",
                "request_id": request_id,
            },
        )
