"""perf: promoted query columns and indexes on documents

Revision ID: 0002_promoted_query_columns
Revises: 0001_initial
Create Date: 2026-10-19
"""

from __future__ import annotations

import orjson
import sqlalchemy as sa
from alembic import op

revision = "0002_promoted_query_columns"
down_revision = "0001_initial"
branch_labels = None
depends_on = None

_PROMOTED = {
    "senderId": "sender_id",
    "recipientId": "recipient_id",
    "status": "status",
    "createdAt": "created_key",
}


def upgrade() -> None:
    with op.batch_alter_table("documents") as batch:
        for column in _PROMOTED.values():
            batch.add_column(sa.Column(column, sa.String(), nullable=True))

    documents = sa.table(
        "documents",
        sa.column("collection", sa.String()),
        sa.column("doc_id", sa.String()),
        sa.column("body_json", sa.Text()),
        *(sa.column(c, sa.String()) for c in _PROMOTED.values()),
    )
    bind = op.get_bind()
    rows = bind.execute(
        sa.select(documents.c.collection, documents.c.doc_id, documents.c.body_json)
    ).all()
    for row in rows:
        body = orjson.loads(row.body_json or "{}")
        if not isinstance(body, dict):
            continue
        values = {
            column: body.get(field_name) if isinstance(body.get(field_name), str) else None
            for field_name, column in _PROMOTED.items()
        }
        if not any(values.values()):
            continue
        bind.execute(
            documents.update()
            .where(documents.c.collection == row.collection)
            .where(documents.c.doc_id == row.doc_id)
            .values(**values)
        )

    op.create_index(
        "ix_documents_collection_recipient_status_created",
        "documents",
        ["collection", "recipient_id", "status", "created_key"],
        unique=False,
    )
    op.create_index(
        "ix_documents_collection_sender_recipient_status",
        "documents",
        ["collection", "sender_id", "recipient_id", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_documents_collection_sender_recipient_status", table_name="documents"
    )
    op.drop_index(
        "ix_documents_collection_recipient_status_created", table_name="documents"
    )
    with op.batch_alter_table("documents") as batch:
        for column in reversed(list(_PROMOTED.values())):
            batch.drop_column(column)
