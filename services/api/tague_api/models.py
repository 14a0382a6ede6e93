from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tague_api.db import Base

# Body fields copied into indexed columns on every write, so hot queries
# (pending requests, a recipient's inbox) filter, sort and limit in SQL.
PROMOTED_FIELDS: dict[str, str] = {
    "senderId": "sender_id",
    "recipientId": "recipient_id",
    "status": "status",
    "createdAt": "created_key",
}


class StoredDocument(Base):
    """One document of the document store.

    ``collection`` is the full collection path (``accounts/u1/boards``), so
    per-owner subcollections are plain prefixes. ``version`` increases on every
    write and is what optimistic transactions compare against at commit.
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String, primary_key=True)
    doc_id: Mapped[str] = mapped_column(String, primary_key=True)
    body_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sender_id: Mapped[str | None] = mapped_column(String, nullable=True)
    recipient_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    # ISO-8601 UTC text of the body's createdAt; sorts chronologically.
    created_key: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
        Index(
            "ix_documents_collection_recipient_status_created",
            "collection",
            "recipient_id",
            "status",
            "created_key",
        ),
        Index(
            "ix_documents_collection_sender_recipient_status",
            "collection",
            "sender_id",
            "recipient_id",
            "status",
        ),
    )


def promoted_columns(body: dict) -> dict[str, str | None]:
    out: dict[str, str | None] = {}
    for field_name, column in PROMOTED_FIELDS.items():
        value = body.get(field_name)
        out[column] = value if isinstance(value, str) else None
    return out
