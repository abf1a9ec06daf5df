"""Secondary browser sessions admitted to a token through an invitation.

Revocation flips ``is_active``; rows are kept so a revoked browser cannot
sneak back in with its old cookie.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from id100.models.base import Base, TimestampMixin, utcnow


class AuthorizedSession(TimestampMixin, Base):
    __tablename__ = "authorized_sessions"
    __table_args__ = (
        UniqueConstraint("token_id", "session_identifier", name="uq_authorized_session"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_id: Mapped[int] = mapped_column(
        ForeignKey("upload_tokens.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_identifier: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    player_name: Mapped[str] = mapped_column(String(100), nullable=False)
    player_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invitation_id: Mapped[int | None] = mapped_column(
        ForeignKey("session_invitations.id", ondelete="SET NULL"), nullable=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    upload_token = relationship("UploadToken", back_populates="authorized_sessions")
