"""DB-backed record store for the editing service."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable

import psycopg2

from app.db import execute, fetch_all, fetch_one, get_conn
from field_support import DEFAULT_INLINE_TYPES
from field_types import LanguageValue
from frontedit.names import is_digits
from record_store import MemoryRecordStore, Record, RecordSaveError, normalize_path

logger = logging.getLogger("frontedit.store")

_SCHEMA_SQL = """
create table if not exists frontedit_records (
    id bigserial primary key,
    template text not null,
    path text unique,
    owner_id bigint references frontedit_records(id) on delete cascade,
    owner_field text,
    locked boolean not null default false,
    data jsonb not null default '{}'::jsonb,
    created_at timestamptz not null default now(),
    updated_at timestamptz not null default now()
)
"""


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _json_value(value: Any) -> Any:
    if isinstance(value, LanguageValue):
        return value.to_dict()
    return value


def _json_dumps(value: object) -> str:
    return json.dumps(value, default=str)


def _decode_data(raw: Any) -> dict:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("record_data_undecodable")
            return {}
    return raw if isinstance(raw, dict) else {}


class DbRecordStore(MemoryRecordStore):
    """Fields and templates come from the site definition; rows live in Postgres."""

    def __init__(self, languages: Iterable[int] | None = None, inline_types: Iterable[str] = DEFAULT_INLINE_TYPES) -> None:
        super().__init__(languages=languages, inline_types=inline_types)
        self._schema_ready = False

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with get_conn() as conn:
            execute(conn, _SCHEMA_SQL, query_name="frontedit_records.schema")
        self._schema_ready = True

    def _row_from_db(self, row: dict) -> dict:
        template = row.get("template")
        return {
            "id": int(row["id"]),
            "template": template,
            "path": row.get("path"),
            "owner_id": row.get("owner_id"),
            "owner_field": row.get("owner_field"),
            "locked": bool(row.get("locked")),
            "data": self._blank_data(template, _decode_data(row.get("data"))),
        }

    def create(
        self,
        template: str,
        path: str | None = None,
        data: dict | None = None,
        record_id: int | None = None,
        owner_id: int | None = None,
        owner_field: str | None = None,
        locked: bool = False,
    ) -> Record:
        if self.template(template) is None:
            raise KeyError(f"Unknown template: {template}")
        self.ensure_schema()
        values = {key: _json_value(val) for key, val in self._blank_data(template, data).items()}
        path = normalize_path(path) if path else None
        with get_conn() as conn:
            if record_id is None:
                row = fetch_one(
                    conn,
                    """
                    insert into frontedit_records (template, path, owner_id, owner_field, locked, data, created_at, updated_at)
                    values (%s,%s,%s,%s,%s,%s,%s,%s)
                    returning id, template, path, owner_id, owner_field, locked, data
                    """,
                    [template, path, owner_id, owner_field, locked, _json_dumps(values), _now(), _now()],
                    query_name="frontedit_records.create",
                )
            else:
                row = fetch_one(
                    conn,
                    """
                    insert into frontedit_records (id, template, path, owner_id, owner_field, locked, data, created_at, updated_at)
                    values (%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    on conflict (id) do update set template=excluded.template, path=excluded.path,
                        owner_id=excluded.owner_id, owner_field=excluded.owner_field, locked=excluded.locked
                    returning id, template, path, owner_id, owner_field, locked, data
                    """,
                    [int(record_id), template, path, owner_id, owner_field, locked, _json_dumps(values), _now(), _now()],
                    query_name="frontedit_records.upsert",
                )
            if owner_id is not None and owner_field:
                execute(
                    conn,
                    """
                    update frontedit_records
                    set data = jsonb_set(data, array[%s], coalesce(data -> %s, '[]'::jsonb) || to_jsonb(%s::bigint)),
                        updated_at=%s
                    where id=%s and not coalesce(data -> %s, '[]'::jsonb) @> to_jsonb(%s::bigint)
                    """,
                    [owner_field, owner_field, row["id"], _now(), int(owner_id), owner_field, row["id"]],
                    query_name="frontedit_records.append_child",
                )
        return self._instance(self._row_from_db(row))

    def get(self, locator: Any) -> Record | None:
        if isinstance(locator, bool):
            return None
        if isinstance(locator, int):
            where, param = "id=%s", locator
        elif isinstance(locator, str) and locator.strip():
            value = locator.strip()
            if is_digits(value):
                where, param = "id=%s", int(value)
            else:
                where, param = "path=%s", normalize_path(value)
        else:
            return None
        with get_conn() as conn:
            row = fetch_one(
                conn,
                f"""
                select id, template, path, owner_id, owner_field, locked, data
                from frontedit_records
                where {where}
                """,
                [param],
                query_name="frontedit_records.get",
            )
        if not row or self.template(row.get("template")) is None:
            return None
        return self._instance(self._row_from_db(row))

    def children(self, owner_id: int, owner_field: str) -> list[Record]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select id, template, path, owner_id, owner_field, locked, data
                from frontedit_records
                where owner_id=%s and owner_field=%s
                order by id
                """,
                [int(owner_id), owner_field],
                query_name="frontedit_records.children",
            )
        return [self._instance(self._row_from_db(row)) for row in rows if self.template(row.get("template"))]

    def save(self, record: Record) -> None:
        changes = record.get_changes()
        patch: Dict[str, Any] = {name: _json_value(record.get(name)) for name in changes}
        try:
            with get_conn() as conn:
                updated = execute(
                    conn,
                    """
                    update frontedit_records
                    set data = data || %s::jsonb, updated_at=%s
                    where id=%s and not locked
                    """,
                    [_json_dumps(patch), _now(), record.id],
                    query_name="frontedit_records.save",
                )
        except psycopg2.Error as exc:
            raise RecordSaveError(message=str(exc).strip(), record_id=record.id) from exc
        if updated == 0:
            raise RecordSaveError(message=f"Record {record.id} is missing or locked", record_id=record.id)
        logger.info("record_saved id=%s fields=%s", record.id, ",".join(changes))
        record.reset_changes()
