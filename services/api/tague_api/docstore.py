"""Document store client.

A small document-store surface (get / set / update / delete / query /
transaction) that the engine is written against, plus the SQL-backed
implementation used by the service. Documents are JSON objects addressed by
``(collection path, id)``; every write bumps an integer version and
``run_transaction`` uses those versions for optimistic concurrency: the
callback runs against point-in-time reads, its writes are buffered, and the
commit fails (and the callback is re-run) if any document it read or writes
changed underneath it. A callback that only reads is validated the same
way, so its result always reflects one consistent snapshot.

Queries filter on a handful of promoted body fields (see
``models.PROMOTED_FIELDS``) in SQL; any other filter, and any ordering on a
field that is not promoted, is applied in Python after the fetch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Iterable, Protocol, TypeVar

import orjson
from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from tague_api.core.config import Settings
from tague_api.models import PROMOTED_FIELDS, StoredDocument, promoted_columns

T = TypeVar("T")

Filter = tuple[str, str, Any]

_FILTER_OPS = {"==", "!=", "in", "array_contains"}


class DocumentStoreError(Exception):
    pass


class NotFoundError(DocumentStoreError):
    pass


class ConflictError(DocumentStoreError):
    """Optimistic transaction could not commit within its attempt budget."""


class TransientStoreError(DocumentStoreError):
    """The store call failed for a reason worth retrying (I/O, lock timeout)."""


@dataclass(frozen=True)
class ArrayUnion:
    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class Increment:
    amount: int = 1


def apply_deltas(body: dict[str, Any], deltas: dict[str, Any]) -> dict[str, Any]:
    out = dict(body)
    for key, delta in deltas.items():
        if isinstance(delta, ArrayUnion):
            current = list(out.get(key) or [])
            for v in delta.values:
                if v not in current:
                    current.append(v)
            out[key] = current
        elif isinstance(delta, ArrayRemove):
            drop = set(delta.values)
            out[key] = [v for v in (out.get(key) or []) if v not in drop]
        elif isinstance(delta, Increment):
            out[key] = int(out.get(key) or 0) + int(delta.amount)
        else:
            out[key] = delta
    return out


def matches_filters(body: dict[str, Any], filters: Iterable[Filter]) -> bool:
    for field_name, op, value in filters:
        current = body.get(field_name)
        if op == "==":
            if current != value:
                return False
        elif op == "!=":
            if current == value:
                return False
        elif op == "in":
            if current not in value:
                return False
        elif op == "array_contains":
            if not isinstance(current, list) or value not in current:
                return False
        else:
            raise ValueError(f"unsupported filter op: {op!r}")
    return True


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first ascending; mixed types are compared by their string form.
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


def _split_filters(filters: list[Filter]) -> tuple[list[Filter], list[Filter]]:
    """Split filters into (column, op, value) ones SQL can answer and the rest."""
    pushed: list[Filter] = []
    residual: list[Filter] = []
    for field_name, op, value in filters:
        column = PROMOTED_FIELDS.get(field_name)
        if column is not None and op == "==" and isinstance(value, str):
            pushed.append((column, op, value))
        elif (
            column is not None
            and op == "in"
            and isinstance(value, (list, tuple, set, frozenset))
            and all(isinstance(v, str) for v in value)
        ):
            pushed.append((column, op, value))
        else:
            residual.append((field_name, op, value))
    return pushed, residual


def _dumps(body: dict[str, Any]) -> str:
    return orjson.dumps(body).decode("utf-8")


def _loads(raw: str | None) -> dict[str, Any]:
    obj = orjson.loads(raw or "{}")
    return obj if isinstance(obj, dict) else {}


class Transaction(Protocol):
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...
    def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...
    def update(self, collection: str, doc_id: str, deltas: dict[str, Any]) -> None: ...
    def delete(self, collection: str, doc_id: str) -> None: ...


class DocumentStore(Protocol):
    async def get_document(
        self, collection: str, doc_id: str
    ) -> dict[str, Any] | None: ...
    async def set_document(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> None: ...
    async def update_document(
        self, collection: str, doc_id: str, deltas: dict[str, Any]
    ) -> None: ...
    async def delete_document(self, collection: str, doc_id: str) -> bool: ...
    async def query_collection(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]: ...
    async def run_transaction(
        self, fn: Callable[[Transaction], Awaitable[T]]
    ) -> T: ...


class _VersionMismatch(Exception):
    pass


class _SqlTransaction:
    def __init__(self, store: "SqlDocumentStore") -> None:
        self._store = store
        self.read_versions: dict[tuple[str, str], int] = {}
        self.writes: dict[tuple[str, str], tuple[str, Any]] = {}

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        key = (str(collection), str(doc_id))
        if key in self.writes:
            raise RuntimeError("transaction reads must happen before writes")
        body, version = await self._store._call(
            self._store._get_with_version_sync, key[0], key[1]
        )
        self.read_versions.setdefault(key, version)
        return body

    def set(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self.writes[(str(collection), str(doc_id))] = ("set", dict(fields))

    def update(self, collection: str, doc_id: str, deltas: dict[str, Any]) -> None:
        key = (str(collection), str(doc_id))
        prev = self.writes.get(key)
        if prev is not None and prev[0] == "set":
            self.writes[key] = ("set", apply_deltas(prev[1], deltas))
        elif prev is not None and prev[0] == "update":
            self.writes[key] = ("update", [*prev[1], dict(deltas)])
        else:
            self.writes[key] = ("update", [dict(deltas)])

    def delete(self, collection: str, doc_id: str) -> None:
        self.writes[(str(collection), str(doc_id))] = ("delete", None)


class SqlDocumentStore:
    """Document store persisted as rows of the ``documents`` table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        if session_factory is None:
            from tague_api.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._settings = settings or Settings()

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (OperationalError, DBAPIError) as exc:
            if isinstance(exc, IntegrityError):
                raise
            raise TransientStoreError(str(exc)[:400]) from exc

    # -- sync primitives (run in a worker thread) --------------------------

    def _get_with_version_sync(
        self, collection: str, doc_id: str
    ) -> tuple[dict[str, Any] | None, int]:
        with self._session_factory() as session:
            row = session.get(StoredDocument, (collection, doc_id))
            if row is None:
                return None, 0
            return _loads(row.body_json), int(row.version)

    def _set_sync(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        now = datetime.now(UTC)
        with self._session_factory() as session:
            row = session.get(StoredDocument, (collection, doc_id))
            if row is None:
                session.add(
                    StoredDocument(
                        collection=collection,
                        doc_id=doc_id,
                        body_json=_dumps(fields),
                        version=1,
                        created_at=now,
                        updated_at=now,
                        **promoted_columns(fields),
                    )
                )
            else:
                row.body_json = _dumps(fields)
                row.version = int(row.version) + 1
                row.updated_at = now
                for column, value in promoted_columns(fields).items():
                    setattr(row, column, value)
            session.commit()

    def _update_sync(
        self, collection: str, doc_id: str, deltas: dict[str, Any]
    ) -> None:
        with self._session_factory() as session:
            row = session.get(StoredDocument, (collection, doc_id))
            if row is None:
                raise NotFoundError(f"{collection}/{doc_id} not found")
            version = int(row.version)
            body = apply_deltas(_loads(row.body_json), deltas)
            res = session.execute(
                update(StoredDocument)
                .where(StoredDocument.collection == collection)
                .where(StoredDocument.doc_id == doc_id)
                .where(StoredDocument.version == version)
                .values(
                    body_json=_dumps(body),
                    version=version + 1,
                    updated_at=datetime.now(UTC),
                    **promoted_columns(body),
                )
            )
            if int(res.rowcount or 0) != 1:
                session.rollback()
                raise _VersionMismatch(f"{collection}/{doc_id}")
            session.commit()

    def _delete_sync(self, collection: str, doc_id: str) -> bool:
        with self._session_factory() as session:
            res = session.execute(
                delete(StoredDocument)
                .where(StoredDocument.collection == collection)
                .where(StoredDocument.doc_id == doc_id)
            )
            session.commit()
            return int(res.rowcount or 0) > 0

    def _query_sync(
        self,
        collection: str,
        pushed: list[Filter],
        order_column: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        stmt = select(StoredDocument.body_json).where(
            StoredDocument.collection == collection
        )
        for column, op, value in pushed:
            attr = getattr(StoredDocument, column)
            if op == "==":
                stmt = stmt.where(attr == value)
            else:
                stmt = stmt.where(attr.in_(list(value)))
        if order_column is not None:
            attr = getattr(StoredDocument, order_column)
            stmt = stmt.order_by(attr.desc() if descending else attr.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [_loads(raw) for raw in session.scalars(stmt).all()]

    def _write_one(
        self,
        session: Session,
        key: tuple[str, str],
        op: str,
        payload: Any,
        expected: int | None,
        now: datetime,
    ) -> None:
        collection, doc_id = key
        where = (
            StoredDocument.collection == collection,
            StoredDocument.doc_id == doc_id,
        )
        if op == "delete":
            stmt = delete(StoredDocument).where(*where)
            if expected:
                stmt = stmt.where(StoredDocument.version == int(expected))
            removed = int(session.execute(stmt).rowcount or 0)
            if (expected and removed != 1) or (expected == 0 and removed):
                raise _VersionMismatch(f"{collection}/{doc_id}")
            return

        current = session.execute(
            select(StoredDocument.body_json, StoredDocument.version).where(*where)
        ).first()
        if current is None:
            if op == "update":
                raise NotFoundError(f"{collection}/{doc_id} not found")
            if expected:
                raise _VersionMismatch(f"{collection}/{doc_id}")
            session.add(
                StoredDocument(
                    collection=collection,
                    doc_id=doc_id,
                    body_json=_dumps(payload),
                    version=1,
                    created_at=now,
                    updated_at=now,
                    **promoted_columns(payload),
                )
            )
            session.flush()
            return

        version = int(current.version)
        if expected is not None and version != int(expected):
            raise _VersionMismatch(f"{collection}/{doc_id}")
        if op == "update":
            body = _loads(current.body_json)
            for deltas in payload:
                body = apply_deltas(body, deltas)
        else:
            body = dict(payload)
        res = session.execute(
            update(StoredDocument)
            .where(*where)
            .where(StoredDocument.version == version)
            .values(
                body_json=_dumps(body),
                version=version + 1,
                updated_at=now,
                **promoted_columns(body),
            )
        )
        if int(res.rowcount or 0) != 1:
            raise _VersionMismatch(f"{collection}/{doc_id}")

    def _check_reads(self, session: Session, tx: _SqlTransaction) -> None:
        for (collection, doc_id), expected in tx.read_versions.items():
            if (collection, doc_id) in tx.writes:
                continue
            current = session.scalar(
                select(StoredDocument.version)
                .where(StoredDocument.collection == collection)
                .where(StoredDocument.doc_id == doc_id)
            )
            if int(current or 0) != int(expected):
                raise _VersionMismatch(f"{collection}/{doc_id}")

    def _validate_reads_sync(self, tx: _SqlTransaction) -> None:
        with self._session_factory() as session:
            self._check_reads(session, tx)

    def _commit_sync(self, tx: _SqlTransaction) -> None:
        now = datetime.now(UTC)
        with self._session_factory() as session:
            try:
                for key, (op, payload) in tx.writes.items():
                    self._write_one(
                        session, key, op, payload, tx.read_versions.get(key), now
                    )
                # Read-only documents are checked after the writes, while the
                # write lock is held.
                self._check_reads(session, tx)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise _VersionMismatch(str(exc)[:200]) from exc
            except Exception:
                session.rollback()
                raise

    # -- async surface -----------------------------------------------------

    async def get_document(
        self, collection: str, doc_id: str
    ) -> dict[str, Any] | None:
        body, _ = await self._call(
            self._get_with_version_sync, str(collection), str(doc_id)
        )
        return body

    async def set_document(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> None:
        await self._call(self._set_sync, str(collection), str(doc_id), dict(fields))

    async def update_document(
        self, collection: str, doc_id: str, deltas: dict[str, Any]
    ) -> None:
        for _ in range(int(self._settings.store_tx_max_attempts)):
            try:
                await self._call(
                    self._update_sync, str(collection), str(doc_id), dict(deltas)
                )
                return
            except _VersionMismatch:
                continue
        raise ConflictError(f"{collection}/{doc_id}: update kept conflicting")

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        return await self._call(self._delete_sync, str(collection), str(doc_id))

    async def query_collection(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        limit: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        filters = list(filters)
        for _, op, _ in filters:
            if op not in _FILTER_OPS:
                raise ValueError(f"unsupported filter op: {op!r}")
        pushed, residual = _split_filters(filters)
        order_column = PROMOTED_FIELDS.get(order_by) if order_by else None
        in_sql = not residual and (not order_by or order_column is not None)
        if limit is not None:
            limit = max(0, int(limit))
        bodies = await self._call(
            self._query_sync,
            str(collection),
            pushed,
            order_column if in_sql else None,
            descending,
            limit if in_sql else None,
        )
        if in_sql:
            return bodies
        out = [b for b in bodies if matches_filters(b, residual)]
        if order_by:
            out.sort(key=lambda b: _sort_key(b.get(order_by)), reverse=descending)
        if limit is not None:
            out = out[:limit]
        return out

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        attempts = int(self._settings.store_tx_max_attempts)
        for attempt in range(attempts):
            tx = _SqlTransaction(self)
            result = await fn(tx)
            commit = self._commit_sync if tx.writes else self._validate_reads_sync
            try:
                await self._call(commit, tx)
            except _VersionMismatch:
                if attempt + 1 < attempts:
                    await asyncio.sleep(
                        self._settings.store_retry_backoff_ms / 1000.0 * (attempt + 1)
                    )
                continue
            return result
        raise ConflictError(f"transaction did not commit after {attempts} attempts")
