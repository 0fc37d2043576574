"""
Field-type registry and the query/maintenance operations on it.

This module owns the rules around field types and is free of SQL; it
calls `FieldTypeRepo` for storage.

Key responsibilities:
- normalize field names (trim + lower-case) before any lookup or write
- find-or-create a field type for a submitted name (`resolve`), keeping
  exactly one row per `(user_id, name)` even under concurrent creation
- list / rename / delete for the field types screen
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Type

import codec
from db import get_conn
from errors import DuplicateFieldType, InvalidRequest, NotFound, StorageFailure
from models import Category, SortBy
from repo_field_types import FieldTypeRepo
from settings import settings

logger = logging.getLogger("healthlog.field_types")

_UNSET: Any = object()


def normalize_name(raw_name: Optional[str]) -> str:
    return (raw_name or "").strip().lower()


def _parse_option(enum_cls: Type[Enum], raw, default):
    """Map a query-string value onto `enum_cls`, or `default` if it is not one."""

    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        return default


class FieldTypeRegistry:
    """Business rules for field types.

    Example usage:
        registry = FieldTypeRegistry(FieldTypeRepo())
        with get_conn() as conn:
            ft = registry.resolve(conn, user_id, " Cramping ", "severity")
    """

    def __init__(self, repo: FieldTypeRepo, connect=get_conn):
        self.repo = repo
        self.connect = connect

    def resolve(self, conn, user_id: str, raw_name: str, data_type) -> Dict[str, Any]:
        """Find or create the field type for `raw_name` and count one use of it.

        Runs on the caller's connection so it joins the caller's transaction.

        Steps:
        1. Normalize the name and check the data type has a storage rule.
        2. Try to increment an existing row. The stored `data_type` is
           kept even if `data_type` differs (first write wins).
        3. Otherwise insert a new row. If another transaction created the
           same name first, the unique index rejects the insert and we go
           back to step 2.

        Raises:
        - `InvalidRequest` for a blank name
        - `UnsupportedDataType` for a data type the codec cannot store
        """

        name = normalize_name(raw_name)
        if not name:
            raise InvalidRequest("Field name must not be empty")
        dt = codec.check_data_type(data_type)

        attempts = max(1, settings.resolve_max_attempts)
        for attempt in range(1, attempts + 1):
            existing = self.repo.increment_usage(conn, user_id, name)
            if existing is not None:
                return existing
            try:
                created = self.repo.insert(conn, user_id, name, dt.value)
            except DuplicateFieldType:
                logger.warning(
                    "Field type %r was created concurrently for user %s (attempt %d/%d), retrying",
                    name, user_id, attempt, attempts,
                )
                continue
            logger.info("Created field type %r (%s) for user %s", name, dt.value, user_id)
            return created

        raise StorageFailure(f"Could not resolve field type {name!r} after {attempts} attempts")

    def list_field_types(
        self, user_id: str, sort_by: Optional[str] = None, category: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Return the user's field types.

        Unknown `sort_by` values fall back to usage order. `category` only
        filters when it names a real category, so "all" and typos list
        everything.
        """

        order = _parse_option(SortBy, sort_by, SortBy.USAGE)
        category_filter = _parse_option(Category, category, None)
        with self.connect() as conn:
            return self.repo.list_for_user(conn, user_id, order, category_filter)

    def get(self, user_id: str, field_type_id: str) -> Dict[str, Any]:
        with self.connect() as conn:
            found = self.repo.get(conn, user_id, field_type_id)
        if found is None:
            raise NotFound("Field type not found")
        return found

    def rename(
        self, user_id: str, field_type_id: str, name=_UNSET, category=_UNSET
    ) -> Dict[str, Any]:
        """Partially update a field type's name and/or category.

        Omitted arguments are left untouched; `category=None` clears the
        category. A new name that another field type of the user already
        has raises `DuplicateFieldType` and changes nothing.
        """

        changes: Dict[str, Any] = {}
        if name is not _UNSET:
            normalized = normalize_name(name)
            if not normalized:
                raise InvalidRequest("Field type name must not be empty")
            changes["name"] = normalized
        if category is not _UNSET:
            if category is None:
                changes["category"] = None
            else:
                try:
                    changes["category"] = Category(category).value
                except ValueError:
                    raise InvalidRequest(f"Unknown category: {category}") from None

        if not changes:
            return self.get(user_id, field_type_id)

        with self.connect() as conn:
            with conn.transaction():
                updated = self.repo.update(conn, user_id, field_type_id, changes)
        if updated is None:
            raise NotFound("Field type not found")
        logger.info("Updated field type %s for user %s: %s", field_type_id, user_id, changes)
        return updated

    def delete(self, user_id: str, field_type_id: str) -> None:
        """Delete a field type and, by cascade, all of its values.

        Entries that referenced it stay. Deleting an id that does not exist
        is not an error.
        """

        with self.connect() as conn:
            with conn.transaction():
                deleted = self.repo.delete(conn, user_id, field_type_id)
        if deleted:
            logger.info("Deleted field type %s for user %s", field_type_id, user_id)
