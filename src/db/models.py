"""SQLAlchemy models for persistent screening state."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class BlockedNumber(Base):
    """A caller address whose future calls are rejected before any screening."""

    __tablename__ = "blocked_numbers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phone_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    caller_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    call_sid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    blocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
