from datetime import datetime

from pydantic import BaseModel


class ContributionRead(BaseModel):
    id: int
    challenge_number: int
    player_name: str
    player_city: str | None = None
    comment: str | None = None
    content_type: str
    created_at: datetime

    model_config = {"from_attributes": True}
