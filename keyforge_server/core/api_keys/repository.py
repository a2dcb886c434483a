"""Persistence for API keys using SQLAlchemy Core.

Filters are plain dicts keyed by column name:

    {"type": "secret"}                              equality
    {"id": ["apk_1", "apk_2"]}                      set membership
    {"revoked_at": None}                            null check
    {"revoked_at": {"$gt": now}}                    comparison operators
    {"$or": [{"revoked_at": None}, {...}]}          logical OR of clauses

Every method takes the caller's connection so that reads and writes
belonging to one operation share a transaction.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.sql import ColumnElement
from ulid import ULID

from keyforge_server.core.database import api_keys_table
from keyforge_server.core.exceptions import ApiKeyNotFound, InvalidFilter
from .models import ApiKey, FindConfig

ID_PREFIX = "apk_"

Filters = dict[str, Any]

_COMPARISONS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "$gt": lambda col, v: col > v,
    "$gte": lambda col, v: col >= v,
    "$lt": lambda col, v: col < v,
    "$lte": lambda col, v: col <= v,
    "$in": lambda col, v: col.in_([_coerce(x) for x in v]),
    "$nin": lambda col, v: col.not_in([_coerce(x) for x in v]),
    "$like": lambda col, v: col.like(v),
}


def generate_api_key_id() -> str:
    """Generate an opaque, sortable key id (e.g., "apk_01J9...")."""
    return f"{ID_PREFIX}{ULID()}"


def _coerce(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _column(name: str):
    if name not in api_keys_table.c:
        raise InvalidFilter(f"Unknown API key field: {name}")
    return api_keys_table.c[name]


def _operator_clauses(col, operators: dict[str, Any]) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    for op, value in operators.items():
        value = _coerce(value)
        if op == "$eq":
            clauses.append(col.is_(None) if value is None else col == value)
        elif op == "$ne":
            clauses.append(col.is_not(None) if value is None else col != value)
        elif op in _COMPARISONS:
            clauses.append(_COMPARISONS[op](col, value))
        else:
            raise InvalidFilter(f"Unsupported filter operator: {op}")
    return clauses


def build_clauses(filters: Optional[Filters]) -> list[ColumnElement[bool]]:
    """
    Translate a filter dict into SQLAlchemy clauses (implicitly AND-ed).

    Args:
        filters: Filter dict, see module docstring

    Returns:
        List of boolean clauses

    Raises:
        InvalidFilter: If a field or operator is unknown
    """
    clauses: list[ColumnElement[bool]] = []
    for key, value in (filters or {}).items():
        if key in ("$or", "$and"):
            nested = [and_(*build_clauses(f)) for f in value]
            if nested:
                clauses.append(or_(*nested) if key == "$or" else and_(*nested))
            continue

        col = _column(key)
        if isinstance(value, dict):
            clauses.extend(_operator_clauses(col, value))
        elif isinstance(value, (list, tuple, set)):
            clauses.append(col.in_([_coerce(v) for v in value]))
        elif value is None:
            clauses.append(col.is_(None))
        else:
            clauses.append(col == _coerce(value))
    return clauses


def _to_model(row: Any) -> ApiKey:
    return ApiKey.model_validate(dict(row._mapping))


class ApiKeyRepository:
    """Create, update, list and delete API key records."""

    def create(self, conn: Connection, records: list[dict[str, Any]]) -> list[ApiKey]:
        """
        Insert a batch of keys.

        Args:
            conn: Connection carrying the caller's transaction
            records: Column values without ids; ids are assigned here

        Returns:
            Created keys, in input order
        """
        if not records:
            return []

        # executemany binds the columns of the first row, so every row
        # must carry the same keys
        nullable = {
            name for record in records for name in record
            if name in api_keys_table.c and api_keys_table.c[name].nullable
        }
        rows = []
        for record in records:
            row = {name: None for name in nullable}
            row.update({k: _coerce(v) for k, v in record.items()})
            row["id"] = generate_api_key_id()
            rows.append(row)
        conn.execute(insert(api_keys_table), rows)

        return self._fetch_ordered(conn, [row["id"] for row in rows])

    def update(self, conn: Connection, patches: list[dict[str, Any]]) -> list[ApiKey]:
        """
        Apply patches by id.

        Args:
            conn: Connection carrying the caller's transaction
            patches: Dicts with an "id" plus the columns to change

        Returns:
            Updated keys, in input order

        Raises:
            ApiKeyNotFound: If an id does not exist
        """
        ids: list[str] = []
        for patch in patches:
            values = {k: _coerce(v) for k, v in patch.items() if k != "id"}
            key_id = patch["id"]
            stmt = update(api_keys_table).where(api_keys_table.c.id == key_id).values(**values)
            result = conn.execute(stmt)
            if result.rowcount == 0:
                raise ApiKeyNotFound(f"ApiKey with id: {key_id} was not found")
            ids.append(key_id)

        return self._fetch_ordered(conn, ids)

    def retrieve(self, conn: Connection, key_id: str) -> ApiKey:
        """
        Get a single key.

        Raises:
            ApiKeyNotFound: If the id does not exist
        """
        row = conn.execute(
            select(api_keys_table).where(api_keys_table.c.id == key_id)
        ).fetchone()

        if row is None:
            raise ApiKeyNotFound(f"ApiKey with id: {key_id} was not found")

        return _to_model(row)

    def list(
        self,
        conn: Connection,
        filters: Optional[Filters] = None,
        config: Optional[FindConfig] = None,
    ) -> list[ApiKey]:
        """List keys matching the filters (oldest first unless ordered otherwise)."""
        query = self._apply_config(
            select(api_keys_table).where(*build_clauses(filters)),
            config or FindConfig(),
        )
        return [_to_model(row) for row in conn.execute(query).fetchall()]

    def list_and_count(
        self,
        conn: Connection,
        filters: Optional[Filters] = None,
        config: Optional[FindConfig] = None,
    ) -> tuple[list[ApiKey], int]:
        """List keys matching the filters plus the total count ignoring pagination."""
        clauses = build_clauses(filters)
        count = conn.execute(
            select(func.count()).select_from(api_keys_table).where(*clauses)
        ).scalar_one()

        return self.list(conn, filters, config), count

    def delete(self, conn: Connection, ids: Iterable[str]) -> None:
        """Delete keys by id."""
        ids = list(ids)
        if not ids:
            return
        conn.execute(delete(api_keys_table).where(api_keys_table.c.id.in_(ids)))

    def _fetch_ordered(self, conn: Connection, ids: list[str]) -> list[ApiKey]:
        rows = conn.execute(
            select(api_keys_table).where(api_keys_table.c.id.in_(ids))
        ).fetchall()
        by_id = {row.id: _to_model(row) for row in rows}
        return [by_id[key_id] for key_id in ids]

    @staticmethod
    def _apply_config(query, config: FindConfig):
        if config.order:
            for field, direction in config.order.items():
                col = _column(field)
                query = query.order_by(col.desc() if direction == "DESC" else col.asc())
        else:
            query = query.order_by(api_keys_table.c.created_at.asc(), api_keys_table.c.id.asc())

        if config.skip:
            query = query.offset(config.skip)
        if config.take is not None:
            query = query.limit(config.take)
        return query
