"""
SQLAlchemy model for the selection table, plus the trigger DDL that publishes
row changes on a Postgres NOTIFY channel.
Used by postgres_real when SELECTION_STORE=postgres (or DATABASE_URL is set).
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SELECTION_TABLE = "checked_states"

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


class Base(DeclarativeBase):
    pass


class SelectionRecordRow(Base):
    __tablename__ = SELECTION_TABLE

    item_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    is_checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    selected_subitems: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "is_checked": self.is_checked,
            "selected_subitems": self.selected_subitems,
        }


def validate_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name or ""):
        raise ValueError(f"Invalid Postgres identifier: {name!r}")
    return name


def notify_trigger_ddl(channel: str, table: str = SELECTION_TABLE) -> List[str]:
    """
    Statements installing an AFTER INSERT/UPDATE/DELETE trigger that sends
    ``{"op": "...", "record": {...}}`` on ``channel`` for every row change.
    NOTIFY payloads are limited to 8000 bytes, which bounds the number of
    sub-items a single row can carry over the channel.
    """
    channel = validate_identifier(channel)
    table = validate_identifier(table)
    function = f"{table}_notify"
    return [
        f"""
        CREATE OR REPLACE FUNCTION {function}() RETURNS trigger AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                PERFORM pg_notify('{channel}', json_build_object('op', lower(TG_OP), 'record', row_to_json(OLD))::text);
                RETURN OLD;
            END IF;
            PERFORM pg_notify('{channel}', json_build_object('op', lower(TG_OP), 'record', row_to_json(NEW))::text);
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """,
        f"DROP TRIGGER IF EXISTS {function}_trigger ON {table};",
        f"""
        CREATE TRIGGER {function}_trigger
        AFTER INSERT OR UPDATE OR DELETE ON {table}
        FOR EACH ROW EXECUTE FUNCTION {function}();
        """,
    ]
