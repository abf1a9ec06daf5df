from datetime import datetime

from pydantic import BaseModel


class SessionRead(BaseModel):
    session_id: str
    player_name: str | None = None
    player_city: str | None = None
    is_primary: bool
    is_current: bool
    created_at: datetime | None = None
    last_activity_at: datetime | None = None
    expires_at: datetime | None = None


class SessionList(BaseModel):
    sessions: list[SessionRead]
    current_player: str | None = None


class InvitationCreated(BaseModel):
    code: str
    invitation_url: str
    expires_at: datetime
