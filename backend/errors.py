"""
Domain error taxonomy.

Services and repositories raise these; `main.py` maps each one to an HTTP
status and a `{"error": ...}` body. Nothing below the route layer should
know about HTTP status codes.
"""


class HealthLogError(Exception):
    """Base class for every error the core raises on purpose."""


class InvalidRequest(HealthLogError):
    """Missing or malformed input. Surfaced as a client error."""


class DuplicateFieldType(HealthLogError):
    """A `(user_id, name)` pair already exists in `field_types`.

    Raised by the repository when the unique index rejects an insert or a
    rename. `FieldTypeRegistry.resolve` recovers from it locally.
    """

    def __init__(self, user_id: str, name: str):
        super().__init__(f"Field type '{name}' already exists")
        self.user_id = user_id
        self.name = name


class NotFound(HealthLogError):
    """The target of a mutation does not exist."""


class UnsupportedDataType(HealthLogError):
    """The codec has no storage rule for a data type tag."""

    def __init__(self, data_type):
        super().__init__(f"Unsupported data type: {data_type}")
        self.data_type = data_type


class StorageFailure(HealthLogError):
    """Any transport or transaction failure in the database layer."""
