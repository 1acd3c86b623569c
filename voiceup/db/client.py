"""Table client: query builders over SQLAlchemy plus the row change feed.

``client.table(Message).eq("chat_id", chat_id).order("created_at", desc=True).limit(50).fetch()``
reads like the request it issues. Each terminal call runs in its own session,
and writes publish their rows to the realtime broker once committed.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence

from sqlalchemy import and_, delete as sa_delete, func, inspect as sa_inspect, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from voiceup.core.errors import BackendQueryError, ConflictError, RecordNotFoundError
from voiceup.services.realtime import ChangeEvent, EventType, RealtimeBroker

# filled from the client clock when an insert leaves them out
TIMESTAMP_COLUMNS = ("created_at", "updated_at", "joined_at", "last_read_at", "read_at")

_OPS = {
    "eq": lambda c, v: c == v,
    "neq": lambda c, v: c != v,
    "lt": lambda c, v: c < v,
    "lte": lambda c, v: c <= v,
    "gt": lambda c, v: c > v,
    "gte": lambda c, v: c >= v,
    "in": lambda c, v: c.in_(list(v)),
    "ilike": lambda c, v: c.ilike(v, escape="\\"),
    "is": lambda c, v: c.is_(v),
}

# dialects with INSERT .. ON CONFLICT DO NOTHING
_CONFLICT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def row_to_dict(row: Any) -> dict[str, Any]:
    return {attr.key: getattr(row, attr.key) for attr in sa_inspect(row).mapper.column_attrs}

class BackendClient:
    """Everything the chat core needs from the hosted backend."""

    def __init__(self, sessionmaker: async_sessionmaker, broker: RealtimeBroker, storage=None, clock: Callable[[], datetime] = utcnow) -> None:
        self.sessionmaker = sessionmaker
        self.broker = broker
        self.storage = storage
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def table(self, model) -> "Query":
        return Query(self, model)

    async def insert_together(self, *batches: tuple[Any, Sequence[dict[str, Any]]]) -> list[list]:
        """Insert ``(model, rows)`` batches in one transaction, in order.

        Either every row is committed or none is. Change events go out only
        after the commit.
        """
        queries = [Query(self, model) for model, _ in batches]
        created = [[q._model(**q._with_defaults(r)) for r in rows] for q, (_, rows) in zip(queries, batches)]
        current = queries[0]
        try:
            async with self.sessionmaker() as db:
                for current, objs in zip(queries, created):
                    db.add_all(objs)
                    await db.flush()
                for objs in created:
                    for obj in objs:
                        await db.refresh(obj)
                await db.commit()
        except SQLAlchemyError as exc:
            raise current._wrap("insert", exc) from exc
        for q, objs in zip(queries, created):
            await q._publish([ChangeEvent(table=q.table_name, type=EventType.INSERT, record=row_to_dict(o)) for o in objs])
        return created

class Query:
    def __init__(self, client: BackendClient, model) -> None:
        self._client = client
        self._model = model
        self._filters: list[Any] = []
        self._order: list[Any] = []
        self._limit: int | None = None

    @property
    def table_name(self) -> str:
        return self._model.__tablename__

    def _column(self, name: str):
        column = self._model.__table__.columns.get(name)
        if column is None:
            raise BackendQueryError(f"column {self.table_name}.{name} does not exist")
        return getattr(self._model, name)

    def _condition(self, cond):
        if isinstance(cond, dict):
            return and_(*(self._column(k) == v for k, v in cond.items()))
        if isinstance(cond, list):
            return and_(*(self._condition(c) for c in cond))
        column, op, value = cond
        if op not in _OPS:
            raise BackendQueryError(f"unknown filter operator {op!r}")
        return _OPS[op](self._column(column), value)

    def _add(self, column: str, op: str, value: Any) -> "Query":
        self._filters.append(self._condition((column, op, value)))
        return self

    # filters

    def eq(self, column: str, value: Any) -> "Query":
        return self._add(column, "eq", value)

    def neq(self, column: str, value: Any) -> "Query":
        return self._add(column, "neq", value)

    def lt(self, column: str, value: Any) -> "Query":
        return self._add(column, "lt", value)

    def lte(self, column: str, value: Any) -> "Query":
        return self._add(column, "lte", value)

    def gt(self, column: str, value: Any) -> "Query":
        return self._add(column, "gt", value)

    def gte(self, column: str, value: Any) -> "Query":
        return self._add(column, "gte", value)

    def in_(self, column: str, values: Iterable[Any]) -> "Query":
        return self._add(column, "in", values)

    def ilike(self, column: str, pattern: str) -> "Query":
        return self._add(column, "ilike", pattern)

    def is_(self, column: str, value: Any) -> "Query":
        return self._add(column, "is", value)

    def or_(self, *alternatives) -> "Query":
        """Match any alternative: ``(column, op, value)``, ``{column: value}``
        (all equal) or a list of tuples joined with AND."""
        self._filters.append(or_(*(self._condition(a) for a in alternatives)))
        return self

    def order(self, column: str, desc: bool = False) -> "Query":
        col = self._column(column)
        self._order.append(col.desc() if desc else col.asc())
        return self

    def limit(self, n: int) -> "Query":
        self._limit = n
        return self

    # reads

    def _select(self):
        stmt = select(self._model).where(*self._filters).order_by(*self._order)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt

    async def fetch(self) -> list:
        try:
            async with self._client.sessionmaker() as db:
                res = await db.execute(self._select())
                return list(res.scalars().all())
        except SQLAlchemyError as exc:
            raise BackendQueryError(f"select from {self.table_name} failed: {exc}") from exc

    async def maybe_single(self):
        self._limit = 2
        rows = await self.fetch()
        if len(rows) > 1:
            raise BackendQueryError(f"expected at most one row from {self.table_name}, got several")
        return rows[0] if rows else None

    async def single(self):
        row = await self.maybe_single()
        if row is None:
            raise RecordNotFoundError(f"no matching row in {self.table_name}")
        return row

    async def count(self) -> int:
        stmt = select(func.count()).select_from(self._model).where(*self._filters)
        try:
            async with self._client.sessionmaker() as db:
                return int((await db.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise BackendQueryError(f"count on {self.table_name} failed: {exc}") from exc

    # writes

    def _with_defaults(self, values: dict[str, Any]) -> dict[str, Any]:
        values = dict(values)
        columns = self._model.__table__.columns
        if "id" in columns and values.get("id") is None and columns["id"].default is not None:
            values["id"] = uuid.uuid4()
        now = self._client.now()
        for name in TIMESTAMP_COLUMNS:
            if name in columns and name not in values:
                values[name] = now
        return values

    async def _publish(self, changes: Sequence[ChangeEvent]) -> None:
        for change in changes:
            await self._client.broker.publish(change)

    def _wrap(self, action: str, exc: SQLAlchemyError) -> BackendQueryError:
        if isinstance(exc, IntegrityError):
            return ConflictError(f"{action} on {self.table_name} violates a constraint: {exc.orig}")
        return BackendQueryError(f"{action} on {self.table_name} failed: {exc}")

    async def insert_many(self, rows: Sequence[dict[str, Any]]) -> list:
        if not rows:
            return []
        return (await self._client.insert_together((self._model, rows)))[0]

    async def insert_ignoring_conflicts(self, rows: Sequence[dict[str, Any]], on_conflict: Sequence[str]) -> list[dict[str, Any]]:
        """Insert ``rows``, silently skipping those that collide on the unique
        ``on_conflict`` columns. Returns the rows actually written."""
        if not rows:
            return []
        values = [self._with_defaults(r) for r in rows]
        table = self._model.__table__
        try:
            async with self._client.sessionmaker() as db:
                dialect = db.bind.dialect.name
                if dialect not in _CONFLICT_INSERTS:
                    raise BackendQueryError(f"conflict-ignoring insert is not supported on {dialect}")
                stmt = (
                    _CONFLICT_INSERTS[dialect](table)
                    .values(values)
                    .on_conflict_do_nothing(index_elements=list(on_conflict))
                    .returning(*table.columns)
                )
                inserted = [dict(r) for r in (await db.execute(stmt)).mappings()]
                await db.commit()
        except SQLAlchemyError as exc:
            raise self._wrap("insert", exc) from exc
        await self._publish([ChangeEvent(table=self.table_name, type=EventType.INSERT, record=r) for r in inserted])
        return inserted

    async def insert(self, values: dict[str, Any]):
        return (await self.insert_many([values]))[0]

    async def update(self, values: dict[str, Any]) -> list:
        changes = []
        try:
            async with self._client.sessionmaker() as db:
                rows = list((await db.execute(self._select())).scalars().all())
                for row in rows:
                    old = row_to_dict(row)
                    for key, value in values.items():
                        self._column(key)
                        setattr(row, key, value)
                    changes.append((row, old))
                await db.commit()
        except SQLAlchemyError as exc:
            raise self._wrap("update", exc) from exc
        await self._publish([
            ChangeEvent(table=self.table_name, type=EventType.UPDATE, record=row_to_dict(row), old_record=old)
            for row, old in changes
        ])
        return [row for row, _ in changes]

    async def delete(self) -> list:
        try:
            async with self._client.sessionmaker() as db:
                rows = list((await db.execute(self._select())).scalars().all())
                if rows:
                    ids = [r.id for r in rows]
                    await db.execute(sa_delete(self._model).where(self._model.id.in_(ids)))
                    await db.commit()
        except SQLAlchemyError as exc:
            raise self._wrap("delete", exc) from exc
        await self._publish([
            ChangeEvent(table=self.table_name, type=EventType.DELETE, record={}, old_record=row_to_dict(r))
            for r in rows
        ])
        return rows

    async def upsert(self, values: dict[str, Any], on_conflict: Sequence[str]):
        """Update the row matching ``on_conflict`` columns, insert it otherwise."""
        match = Query(self._client, self._model)
        for column in on_conflict:
            match.eq(column, values[column])
        existing = await match.maybe_single()
        if existing is None:
            try:
                return await self.insert(values)
            except ConflictError:
                # lost a race with a concurrent insert of the same key
                pass
        updates = {k: v for k, v in values.items() if k not in on_conflict and k != "id"}
        match = Query(self._client, self._model)
        for column in on_conflict:
            match.eq(column, values[column])
        if not updates:
            return await match.single()
        rows = await match.update(updates)
        return rows[0]
