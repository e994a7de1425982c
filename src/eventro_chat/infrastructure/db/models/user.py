from __future__ import annotations

from sqlalchemy import BigInteger, String, text
from sqlalchemy.orm import Mapped, mapped_column

from eventro_chat.infrastructure.db.base import Base


class UserModel(Base):
    """Owned by the platform's user service; chat only reads it."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    fullname: Mapped[str] = mapped_column(String(255), nullable=False)
    profile_picture: Mapped[str | None] = mapped_column(String(512), nullable=True)
    profile_visibility: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="public",
        server_default=text("'public'"),
    )
