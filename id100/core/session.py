"""Signed cookie jar holding a browser's identity and remembered token view.

The jar is stored by Starlette's ``SessionMiddleware`` (itsdangerous-signed
cookie ``id-100-session``). Its contents are validated into a typed record
on every request; anything that does not validate is replaced by an empty
jar instead of failing the request.
"""

import logging
from datetime import datetime

from pydantic import BaseModel, ValidationError
from starlette.requests import Request

from id100.core.security import CSRF_TOKEN_LENGTH, SESSION_ID_LENGTH, generate_secure_token

logger = logging.getLogger("id100.session")

SESSION_COOKIE_NAME = "id-100-session"
SESSION_MAX_AGE = 30 * 24 * 60 * 60


class CookieJar(BaseModel):
    session_uuid: str | None = None
    csrf_token: str | None = None

    # Remembered view of the token this browser last used
    token: str | None = None
    token_id: int | None = None
    bag_name: str | None = None
    player_name: str | None = None
    player_city: str | None = None
    session_number: int | None = None
    session_started_at: datetime | None = None

    @classmethod
    def load(cls, request: Request) -> "CookieJar":
        raw = request.session
        try:
            return cls.model_validate(dict(raw))
        except ValidationError:
            logger.info("Replacing undecodable session jar")
            return cls()

    def save(self, request: Request) -> None:
        request.session.clear()
        request.session.update(self.model_dump(mode="json", exclude_none=True))

    def ensure_identity(self) -> str:
        if not self.session_uuid or len(self.session_uuid) != SESSION_ID_LENGTH:
            self.session_uuid = generate_secure_token(SESSION_ID_LENGTH)
        return self.session_uuid

    def ensure_csrf(self) -> str:
        if not self.csrf_token:
            self.csrf_token = generate_secure_token(CSRF_TOKEN_LENGTH)
        return self.csrf_token

    def remember_token(self, *, token: str, token_id: int, bag_name: str) -> None:
        self.token = token
        self.token_id = token_id
        self.bag_name = bag_name

    def remember_player(self, name: str, city: str | None) -> None:
        self.player_name = name
        self.player_city = city or None

    def remember_round(self, session_number: int, started_at: datetime | None) -> None:
        self.session_number = session_number
        self.session_started_at = started_at

    def forget_player(self) -> None:
        self.player_name = None
        self.player_city = None

    def forget_token(self) -> None:
        self.token = None
        self.token_id = None
        self.bag_name = None
        self.session_number = None
        self.session_started_at = None
        self.forget_player()
