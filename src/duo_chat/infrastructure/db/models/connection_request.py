from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from duo_chat.infrastructure.db.base import Base


class ConnectionRequestModel(Base):
    __tablename__ = "connection_requests"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    from_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False,
    )
    to_username: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')",
            name="status_valid",
        ),
        # One pending request per (sender, target).
        Index(
            "uq_connection_requests_pending_pair",
            "from_user_id",
            "to_username",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_connection_requests_to_status", "to_username", "status"),
    )
