"""Single-use invitation codes that admit an extra browser to a token."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from id100.models.base import Base, TimestampMixin


class SessionInvitation(TimestampMixin, Base):
    __tablename__ = "session_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    token_id: Mapped[int] = mapped_column(
        ForeignKey("upload_tokens.id", ondelete="CASCADE"), nullable=False, index=True
    )
    issued_by_session: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted_by_session: Mapped[str | None] = mapped_column(String(64), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    upload_token = relationship("UploadToken", back_populates="invitations")

    @property
    def exhausted(self) -> bool:
        return self.use_count >= self.max_uses
