from datetime import datetime

from pydantic import BaseModel, Field

from id100.models.token import DEFAULT_MAX_UPLOADS


class TokenCreate(BaseModel):
    bag_name: str = Field(..., min_length=1, max_length=200)
    max_uploads: int = DEFAULT_MAX_UPLOADS


class TokenCreated(BaseModel):
    status: str = "success"
    token_id: int
    token: str
    bag_name: str
    upload_url: str
    qr_url: str


class TokenAssign(BaseModel):
    player_name: str = Field(..., max_length=100)


class TokenQuotaUpdate(BaseModel):
    max_uploads: int


class TokenRead(BaseModel):
    id: int
    token: str
    bag_name: str
    max_uploads: int
    total_uploads: int
    uploads_remaining: int
    total_sessions: int
    is_active: bool
    current_player: str | None = None
    current_player_city: str | None = None
    session_started_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
