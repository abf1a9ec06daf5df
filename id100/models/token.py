"""Upload token: one row per physical tool (bag) handed to players.

The token string is embedded in the bag's QR code and never changes.
Everything else describes the current round: who holds the bag, which
browser is the primary session, how many uploads the round has used.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from id100.models.base import Base, TimestampMixin

DEFAULT_MAX_UPLOADS = 100


class UploadToken(TimestampMixin, Base):
    """A physical tool's upload credential and its round state.

    Invariants:
    - ``current_player`` empty implies ``primary_session`` empty
    - ``0 <= total_uploads <= max_uploads``
    - ``total_sessions`` is the round (generation) number and only grows
    """

    __tablename__ = "upload_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    bag_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    max_uploads: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_UPLOADS)
    total_uploads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    current_player: Mapped[str | None] = mapped_column(String(100), nullable=True)
    current_player_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    primary_session: Mapped[str | None] = mapped_column(String(64), nullable=True)
    session_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    invitations = relationship(
        "SessionInvitation", back_populates="upload_token",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    authorized_sessions = relationship(
        "AuthorizedSession", back_populates="upload_token",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    upload_logs = relationship(
        "UploadLog", back_populates="upload_token",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def uploads_remaining(self) -> int:
        return max(self.max_uploads - self.total_uploads, 0)

    @property
    def limit_reached(self) -> bool:
        return self.total_uploads >= self.max_uploads

    @property
    def is_claimed(self) -> bool:
        return bool(self.current_player)
