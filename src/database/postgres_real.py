"""
Real Postgres-backed selection store for production when SELECTION_STORE=postgres
(or DATABASE_URL is set). Implements the same interface as src.database.postgres
(in-memory stub).

Reads and upserts go through SQLAlchemy on a worker thread; the push channel is
a dedicated psycopg2 connection LISTENing on the channel the trigger from
``create_tables`` notifies.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import sql
from sqlalchemy import create_engine, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import Base, SelectionRecordRow, notify_trigger_ddl, validate_identifier
from src.integrations.contracts.selection import (
    SelectionRecord,
    SelectionStore,
    Subscription,
    record_from_row,
)

logger = logging.getLogger(__name__)

_CLOSED = object()


def _normalize_connection_string(s: str) -> str:
    """Strip common mistakes: 'psql \'...\'', extra quotes, whitespace."""
    s = s.strip()
    if re.match(r"^psql\s+", s, re.IGNORECASE):
        s = re.sub(r"^psql\s+", "", s, flags=re.IGNORECASE).strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s


def _sqlalchemy_url(url: str) -> str:
    """Rewrite the legacy postgres:// scheme, which SQLAlchemy rejects."""
    return re.sub(r"^postgres://", "postgresql://", url)


def _libpq_dsn(url: str) -> str:
    """Drop a SQLAlchemy driver suffix (postgresql+psycopg2://) so libpq accepts the URL."""
    return re.sub(r"^postgres(ql)?\+\w+://", "postgresql://", url)


class ListenSubscription(Subscription):
    """
    NOTIFY payloads from a dedicated autocommit connection.

    The connection socket is watched with ``loop.add_reader``; each readable
    event polls the connection and queues pending notifications. A poll error
    (server gone, network drop) ends the stream with that error.
    """

    def __init__(self, conn, loop: asyncio.AbstractEventLoop) -> None:
        self._conn = conn
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._fd: Optional[int] = conn.fileno()
        loop.add_reader(self._fd, self._on_readable)

    def _on_readable(self) -> None:
        try:
            self._conn.poll()
        except psycopg2.Error as exc:
            self._detach()
            self._queue.put_nowait(exc)
            return
        while self._conn.notifies:
            self._queue.put_nowait(self._conn.notifies.pop(0))

    def _detach(self) -> None:
        if self._fd is not None:
            self._loop.remove_reader(self._fd)
            self._fd = None

    async def __anext__(self) -> Dict[str, Any]:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        try:
            return json.loads(item.payload)
        except json.JSONDecodeError:
            logger.warning("Non-JSON notification on %s: %r", item.channel, item.payload[:200])
            return item.payload

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._detach()
        self._conn.close()
        self._queue.put_nowait(_CLOSED)


class PostgresSelectionStore(SelectionStore):
    """
    Postgres data access using SQLAlchemy + psycopg2 LISTEN/NOTIFY.
    """

    def __init__(
        self,
        connection_string: str,
        channel: str = "checked_states",
        pool_size: int = 5,
        max_overflow: int = 10,
    ) -> None:
        connection_string = _normalize_connection_string(connection_string)
        self.channel = validate_identifier(channel)
        self._dsn = _libpq_dsn(connection_string)
        self.engine = create_engine(
            _sqlalchemy_url(connection_string),
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
        )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        """Create the selection table and install the change-notification trigger."""
        Base.metadata.create_all(bind=self.engine)
        with self.engine.begin() as conn:
            for statement in notify_trigger_ddl(self.channel):
                conn.execute(text(statement))
        logger.info("Selection table and notify trigger ready (channel=%s)", self.channel)

    @contextmanager
    def _session(self) -> Session:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # ------------------------------------------------------------------ #
    # Sync implementations (run on a worker thread)
    # ------------------------------------------------------------------ #
    def _read_all(self) -> List[SelectionRecord]:
        with self._session() as s:
            rows = s.execute(select(SelectionRecordRow).order_by(SelectionRecordRow.item_id)).scalars().all()
            return [record_from_row(row.to_dict()) for row in rows]

    def _upsert(self, record: SelectionRecord) -> SelectionRecord:
        values = record.to_dict()
        stmt = (
            pg_insert(SelectionRecordRow)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[SelectionRecordRow.item_id],
                set_={
                    "is_checked": values["is_checked"],
                    "selected_subitems": values["selected_subitems"],
                    "updated_at": text("now()"),
                },
            )
            .returning(
                SelectionRecordRow.item_id,
                SelectionRecordRow.is_checked,
                SelectionRecordRow.selected_subitems,
            )
        )
        with self._session() as s:
            row = s.execute(stmt).mappings().one()
            return record_from_row(dict(row))

    def _listen_connection(self):
        conn = psycopg2.connect(self._dsn)
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
        except Exception:
            conn.close()
            raise
        return conn

    # ------------------------------------------------------------------ #
    # SelectionStore
    # ------------------------------------------------------------------ #
    async def read_all(self) -> List[SelectionRecord]:
        return await asyncio.to_thread(self._read_all)

    async def upsert(self, record: SelectionRecord) -> SelectionRecord:
        return await asyncio.to_thread(self._upsert, record)

    async def subscribe(self) -> Subscription:
        conn = await asyncio.to_thread(self._listen_connection)
        logger.info("Listening for selection changes on channel %s", self.channel)
        return ListenSubscription(conn, asyncio.get_running_loop())

    async def close(self) -> None:
        self.engine.dispose()
