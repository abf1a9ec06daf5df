from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from id100.models.base import Base, TimestampMixin


class BagRequest(TimestampMixin, Base):
    """Someone asked, through the public form, to receive a tool."""

    __tablename__ = "bag_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    handled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
