"""
Repository: SQL operations for `entries` and `field_values`.

This file contains only DB interaction code. Methods take the connection
to run on and never commit; the calling service owns the transaction.
Rows are returned as plain dicts with snake_case keys.

Important notes:
- Entries are read oldest-first by `occurred_at`, with `created_at` and
  `id` as tie-breakers so paging through equal timestamps is stable.
- Field values are returned with the undecoded value columns; decoding
  belongs to the codec.
"""

from typing import Any, Dict, List, Optional, Sequence

from codec import EncodedValue


class EntryRepo:
    """DB access only. No business logic here.

    Responsibilities:
    - Insert entries and their field value rows
    - Read a page of entries and the field values joined to their types
    """

    def insert_entry(
        self, conn, user_id: str, occurred_at, raw_text: Optional[str] = None
    ) -> Dict[str, Any]:
        with conn.cursor() as cur:
            cur.execute(
                "INSERT INTO entries (user_id, occurred_at, raw_text) VALUES (%s, %s, %s) "
                "RETURNING id, user_id, occurred_at, raw_text, created_at",
                (user_id, occurred_at, raw_text),
            )
            r = cur.fetchone()
        return {
            "id": str(r[0]),
            "user_id": str(r[1]),
            "occurred_at": r[2],
            "raw_text": r[3],
            "created_at": r[4],
        }

    def insert_field_value(
        self, conn, entry_id: str, field_type_id: str, encoded: EncodedValue
    ) -> str:
        """Append one field value row and return its id."""

        with conn.cursor() as cur:
            cur.execute(
                "INSERT INTO field_values "
                "(entry_id, field_type_id, text_value, number_value, boolean_value) "
                "VALUES (%s, %s, %s, %s, %s) RETURNING id",
                (entry_id, field_type_id, encoded.text, encoded.number, encoded.boolean),
            )
            return str(cur.fetchone()[0])

    def fetch_entries(
        self, conn, user_id: str, limit: int, offset: int
    ) -> List[Dict[str, Any]]:
        """Fetch one page of `user_id`'s entries, ordered by occurrence time."""

        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, occurred_at, raw_text, created_at FROM entries "
                "WHERE user_id = %s ORDER BY occurred_at ASC, created_at ASC, id ASC "
                "LIMIT %s OFFSET %s",
                (user_id, limit, offset),
            )
            return [
                {
                    "id": str(r[0]),
                    "occurred_at": r[1],
                    "raw_text": r[2],
                    "created_at": r[3],
                }
                for r in cur.fetchall()
            ]

    def fetch_field_values(self, conn, entry_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Fetch the field values of `entry_ids` joined with their field type.

        Rows keep insertion order per entry.
        """

        if not entry_ids:
            return []
        with conn.cursor() as cur:
            cur.execute(
                "SELECT fv.entry_id, ft.name, ft.category, ft.data_type, "
                "fv.text_value, fv.number_value, fv.boolean_value "
                "FROM field_values fv JOIN field_types ft ON ft.id = fv.field_type_id "
                "WHERE fv.entry_id = ANY(%s::uuid[]) "
                "ORDER BY fv.created_at ASC, fv.id ASC",
                (list(entry_ids),),
            )
            return [
                {
                    "entry_id": str(r[0]),
                    "name": r[1],
                    "category": r[2],
                    "data_type": r[3],
                    "text_value": r[4],
                    "number_value": r[5],
                    "boolean_value": r[6],
                }
                for r in cur.fetchall()
            ]

    def ping(self, conn) -> None:
        """Lightweight DB health check. Raises on error."""

        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
