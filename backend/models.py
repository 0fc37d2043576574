"""
Pydantic models and shared enumerations used across the backend.

Input shapes validate requests at the FastAPI route boundary; output
shapes describe what the routes return. Services and repositories pass
plain dicts with snake_case keys; the output models turn those into the
camelCase JSON the frontend expects.

Guidelines:
- `DataType` and `Category` are the only definitions of those value sets.
  The table CHECK constraints in `db.py` and the list filter in
  `service_field_types.py` are derived from them.
- Keep DB-specific fields (like `id`) on the `*Out` / `*View` models only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DataType(str, Enum):
    BOOLEAN = "boolean"
    SCALE_1_10 = "scale_1_10"
    SEVERITY = "severity"
    NUMBER = "number"
    TEXT = "text"
    DURATION = "duration"


class Category(str, Enum):
    SYMPTOM = "symptom"
    FOOD = "food"
    MEDICATION = "medication"
    CONTEXT = "context"
    OTHER = "other"


class SortBy(str, Enum):
    USAGE = "usage"
    NAME = "name"
    CREATED = "created"


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldInput(CamelModel):
    """One `(name, dataType, value)` tuple of an entry submission.

    `value` keeps its JSON type: the codec decides how to coerce it for
    the field type's storage column.
    """

    name: str
    data_type: DataType
    value: Optional[Union[bool, int, float, str]] = None


class EntryIn(CamelModel):
    """Body of `POST /entries`.

    Both fields are optional here so the recorder can answer with its own
    "missing required fields" message instead of a schema error.
    """

    occurred_at: Optional[datetime] = None
    fields: List[FieldInput] = Field(default_factory=list)


class FieldTypeUpdate(CamelModel):
    """Body of `PATCH /field-types`. Absent keys are left untouched."""

    id: Optional[UUID] = None
    name: Optional[str] = None
    category: Optional[Category] = None


class FieldTypeOut(CamelModel):
    id: str
    user_id: str
    name: str
    data_type: str
    category: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    usage_count: int
    created_at: datetime


class FieldView(CamelModel):
    """A decoded field value joined with its field type."""

    name: str
    category: Optional[str] = None
    data_type: str
    value: Any = None


class EntryView(CamelModel):
    id: str
    occurred_at: datetime
    raw_text: Optional[str] = None
    created_at: datetime
    fields: List[FieldView] = Field(default_factory=list)


class EntryCreated(CamelModel):
    success: bool = True
    entry_id: str


class EntriesOut(CamelModel):
    entries: List[EntryView]


class FieldTypesOut(CamelModel):
    field_types: List[FieldTypeOut]


class FieldTypeEnvelope(CamelModel):
    field_type: FieldTypeOut


class SuccessOut(CamelModel):
    success: bool = True
