"""
Service / facade layer for entries.

This module implements the write and read rules for entries. It is free
of SQL: it calls `EntryRepo` for storage and `FieldTypeRegistry` to turn
submitted field names into field types.

Key responsibilities:
- validate submissions (timestamp, non-empty field list, batch size)
- enforce timestamp rules (timezone-awareness + UTC normalization)
- record an entry and all of its field values in ONE transaction
- page through entries and decode their values for display
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

import codec
from db import get_conn
from errors import InvalidRequest
from models import FieldInput
from repo_entries import EntryRepo
from service_field_types import FieldTypeRegistry, normalize_name
from settings import settings

logger = logging.getLogger("healthlog.entries")


def _as_field_input(raw) -> FieldInput:
    if isinstance(raw, FieldInput):
        return raw
    try:
        return FieldInput.model_validate(raw)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid field: {e.errors()[0]['msg']}") from None


def _as_utc(occurred_at) -> datetime:
    if isinstance(occurred_at, str):
        try:
            occurred_at = datetime.fromisoformat(occurred_at)
        except ValueError:
            raise InvalidRequest(f"Invalid occurredAt timestamp: {occurred_at!r}") from None
    if not isinstance(occurred_at, datetime):
        raise InvalidRequest("occurredAt must be a timestamp")
    if occurred_at.tzinfo is None:
        raise InvalidRequest(
            "Timestamp must include timezone info (e.g., 2024-01-01T10:00:00Z)"
        )
    return occurred_at.astimezone(timezone.utc)


class EntryService:
    """Business rules for recording and reading entries.

    Example usage:
        registry = FieldTypeRegistry(FieldTypeRepo())
        svc = EntryService(EntryRepo(), registry)
        svc.record_entry(user_id, occurred_at, [{"name": "pizza", "dataType": "boolean", "value": True}])
    """

    def __init__(self, repo: EntryRepo, registry: FieldTypeRegistry, connect=get_conn):
        self.repo = repo
        self.registry = registry
        self.connect = connect

    def record_entry(
        self, user_id: str, occurred_at, fields: Optional[Sequence[Any]]
    ) -> Dict[str, Any]:
        """Create one entry with its field values.

        Steps:
        1. Guards: timestamp present and timezone-aware, 1..max fields,
           every field has a name and a non-blank value.
        2. In one transaction: insert the entry, resolve every field type
           in name order, then in submission order encode each value for
           its field type's data type and insert the value row.

        Resolving takes row locks on `field_types` that are held until
        commit. Taking them in name order means two entries that share
        names always wait on each other in the same direction and cannot
        deadlock.

        Any failure rolls the whole transaction back, including usage
        count increments, so readers never see a partial entry. A name
        submitted twice creates two value rows and counts twice.
        """

        # 1) guards
        if occurred_at is None or not fields:
            raise InvalidRequest("Missing required fields")
        if len(fields) > settings.max_fields_per_entry:
            raise InvalidRequest(
                f"Too many fields in one entry: {len(fields)} (max {settings.max_fields_per_entry})"
            )
        occurred_at = _as_utc(occurred_at)

        inputs = [_as_field_input(f) for f in fields]
        for f in inputs:
            if not f.name.strip():
                raise InvalidRequest("Field name must not be empty")
            if f.value is None or f.value == "":
                raise InvalidRequest(f"Field '{f.name.strip()}' has no value")

        # 2) one transaction for the entry and every value
        with self.connect() as conn:
            with conn.transaction():
                entry = self.repo.insert_entry(conn, user_id, occurred_at, raw_text=None)

                by_name = sorted(range(len(inputs)), key=lambda i: normalize_name(inputs[i].name))
                field_types = {}
                for i in by_name:
                    f = inputs[i]
                    field_types[i] = self.registry.resolve(conn, user_id, f.name, f.data_type)

                for i, f in enumerate(inputs):
                    field_type = field_types[i]
                    encoded = codec.encode(field_type["data_type"], f.value)
                    self.repo.insert_field_value(conn, entry["id"], field_type["id"], encoded)

        logger.info(
            "Recorded entry %s for user %s with %d field(s)", entry["id"], user_id, len(inputs)
        )
        return entry

    def list_entries(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Return a page of entries, oldest occurrence first, with decoded fields."""

        if limit is None:
            limit = settings.default_page_size
        if limit < 0 or offset < 0:
            raise InvalidRequest("limit and offset must not be negative")

        with self.connect() as conn:
            entries = self.repo.fetch_entries(conn, user_id, limit, offset)
            values = self.repo.fetch_field_values(conn, [e["id"] for e in entries])

        fields_by_entry: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for v in values:
            fields_by_entry[v["entry_id"]].append({
                "name": v["name"],
                "category": v["category"],
                "data_type": v["data_type"],
                "value": codec.decode(None, v),
            })

        return [{**e, "fields": fields_by_entry.get(e["id"], [])} for e in entries]

    def health_check(self) -> None:
        """Perform a lightweight DB ping via the repository."""

        with self.connect() as conn:
            self.repo.ping(conn)
