"""Per-upload ledger row, keyed by token and round.

Drives the upload cooldown (latest ``uploaded_at`` per token and round) and
the "your uploads this round" listing.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from id100.models.base import Base, utcnow


class UploadLog(Base):
    __tablename__ = "upload_logs"
    __table_args__ = (
        Index("ix_upload_logs_token_session", "token_id", "session_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_id: Mapped[int] = mapped_column(
        ForeignKey("upload_tokens.id", ondelete="CASCADE"), nullable=False
    )
    contribution_id: Mapped[int | None] = mapped_column(
        ForeignKey("contributions.id", ondelete="CASCADE"), nullable=True
    )
    challenge_number: Mapped[int] = mapped_column(Integer, nullable=False)
    player_name: Mapped[str] = mapped_column(String(100), nullable=False)
    session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    upload_token = relationship("UploadToken", back_populates="upload_logs")
