# src/tagdrop/models/drop_message.py
"""Models describing anonymous drop messages."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tagdrop.db.session import Base
from tagdrop.db.time import utcnow

TOKEN_HASH_LENGTH = 43


def new_message_id() -> str:
    return str(uuid.uuid4())


class DropMessage(Base):
    """Short-lived notice left on a drop token.

    Rows are keyed only by the HMAC of the public token and carry no
    reference to any user, device or tag record.
    """

    __tablename__ = "drop_message"
    __table_args__ = (
        Index("ix_drop_message_token_created", "drop_token_hash", "created_at"),
        Index("ix_drop_message_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_message_id)
    drop_token_hash: Mapped[str] = mapped_column(String(TOKEN_HASH_LENGTH), nullable=False)
    # Already whitespace-collapsed and HTML-escaped.
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
