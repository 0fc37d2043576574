"""
Repository: SQL operations for `field_types`.

This file contains only DB interaction code. Every method takes the
connection to run on, so a service can put several repository calls
inside one transaction. Rows come back as plain dicts with snake_case
keys. Keep business rules (normalization, retry policy) out of this
module.

Important notes:
- The unique index `user_name_unique (user_id, name)` is what keeps one
  field type per name per user. A violation is reported as
  `DuplicateFieldType`, never as a raw psycopg error.
- `insert` runs inside a savepoint so a violation does not abort the
  caller's surrounding transaction.
"""

from typing import Any, Dict, List, Optional

from psycopg import errors as pg_errors
from psycopg import sql
from psycopg.types.json import Jsonb

from errors import DuplicateFieldType
from models import Category, SortBy

_COLUMNS = "id, user_id, name, data_type, category, config, usage_count, created_at"

_ORDER_BY = {
    SortBy.USAGE: "usage_count DESC, name ASC",
    SortBy.NAME: "name ASC",
    SortBy.CREATED: "created_at DESC",
}

_UPDATABLE = ("name", "category")


def _row_to_field_type(r) -> Dict[str, Any]:
    return {
        "id": str(r[0]),
        "user_id": str(r[1]),
        "name": r[2],
        "data_type": r[3],
        "category": r[4],
        "config": r[5] or {},
        "usage_count": r[6],
        "created_at": r[7],
    }


class FieldTypeRepo:
    """DB access only. No business logic here."""

    def increment_usage(self, conn, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        """Bump `usage_count` of `(user_id, name)` by one in a single statement.

        Returns the updated row, or None when no such field type exists.
        """

        with conn.cursor() as cur:
            cur.execute(
                f"UPDATE field_types SET usage_count = usage_count + 1 "
                f"WHERE user_id = %s AND name = %s RETURNING {_COLUMNS}",
                (user_id, name),
            )
            r = cur.fetchone()
        return _row_to_field_type(r) if r else None

    def insert(self, conn, user_id: str, name: str, data_type: str) -> Dict[str, Any]:
        """Create a field type with `usage_count = 1` and no category.

        Raises `DuplicateFieldType` if the name is already taken for the user.
        """

        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        f"INSERT INTO field_types (user_id, name, data_type, category, config, usage_count) "
                        f"VALUES (%s, %s, %s, NULL, %s, 1) RETURNING {_COLUMNS}",
                        (user_id, name, data_type, Jsonb({})),
                    )
                    r = cur.fetchone()
        except pg_errors.UniqueViolation:
            raise DuplicateFieldType(user_id, name) from None
        return _row_to_field_type(r)

    def get(self, conn, user_id: str, field_type_id: str) -> Optional[Dict[str, Any]]:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM field_types WHERE id = %s AND user_id = %s",
                (field_type_id, user_id),
            )
            r = cur.fetchone()
        return _row_to_field_type(r) if r else None

    def list_for_user(
        self, conn, user_id: str, sort_by: SortBy, category: Optional[Category] = None
    ) -> List[Dict[str, Any]]:
        """Return the user's field types in `sort_by` order.

        `category` restricts to an exact match when given.
        """

        query = sql.SQL("SELECT {} FROM field_types WHERE user_id = %s").format(
            sql.SQL(_COLUMNS)
        )
        params: List[Any] = [user_id]
        if category is not None:
            query += sql.SQL(" AND category = %s")
            params.append(category.value)
        query += sql.SQL(" ORDER BY ") + sql.SQL(_ORDER_BY[sort_by])

        with conn.cursor() as cur:
            cur.execute(query, params)
            return [_row_to_field_type(r) for r in cur.fetchall()]

    def update(
        self, conn, user_id: str, field_type_id: str, changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply a partial update of `name` and/or `category`.

        Returns the updated row, or None if the id does not belong to the
        user. A rename onto an existing name raises `DuplicateFieldType`.
        """

        unknown = set(changes) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(col)) for col in changes
        )
        query = sql.SQL(
            "UPDATE field_types SET {} WHERE id = %s AND user_id = %s RETURNING {}"
        ).format(assignments, sql.SQL(_COLUMNS))

        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(query, [*changes.values(), field_type_id, user_id])
                    r = cur.fetchone()
        except pg_errors.UniqueViolation:
            raise DuplicateFieldType(user_id, changes.get("name")) from None
        return _row_to_field_type(r) if r else None

    def delete(self, conn, user_id: str, field_type_id: str) -> int:
        """Delete one field type; `field_values` rows go with it via FK cascade.

        Returns the number of deleted rows (0 or 1).
        """

        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM field_types WHERE id = %s AND user_id = %s",
                (field_type_id, user_id),
            )
            return cur.rowcount
