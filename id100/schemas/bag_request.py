from datetime import datetime

from pydantic import BaseModel


class BagRequestRead(BaseModel):
    id: int
    email: str
    handled: bool
    created_at: datetime

    model_config = {"from_attributes": True}
