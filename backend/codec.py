"""
TypedValue codec: runtime values <-> the three value columns of
`field_values`.

Every field value row has `text_value`, `number_value` and
`boolean_value`; exactly one is populated, chosen by the field type's
data type:

    boolean              -> boolean_value
    scale_1_10, number   -> number_value (NUMERIC)
    severity, text       -> text_value

`duration` is part of `DataType` but has no storage rule yet, so both
directions raise `UnsupportedDataType` for it.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, NamedTuple, Optional

from errors import InvalidRequest, UnsupportedDataType
from models import DataType


class EncodedValue(NamedTuple):
    text: Optional[str] = None
    number: Optional[Decimal] = None
    boolean: Optional[bool] = None


BOOLEAN_TYPES = {DataType.BOOLEAN}
NUMERIC_TYPES = {DataType.SCALE_1_10, DataType.NUMBER}
TEXT_TYPES = {DataType.SEVERITY, DataType.TEXT}
SUPPORTED_TYPES = BOOLEAN_TYPES | NUMERIC_TYPES | TEXT_TYPES

_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}

# Bounds of PostgreSQL NUMERIC input: exponents of at most 1000 either way
# and at most 16383 digits after the decimal point.
NUMERIC_MAX_EXPONENT = 1000
NUMERIC_MAX_SCALE = 16383


def check_data_type(data_type) -> DataType:
    try:
        dt = DataType(data_type)
    except ValueError:
        raise UnsupportedDataType(data_type) from None
    if dt not in SUPPORTED_TYPES:
        raise UnsupportedDataType(dt.value)
    return dt


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise InvalidRequest(f"Value {value!r} is not a valid boolean")


def _to_number(value: Any) -> Decimal:
    # bool is an int subclass; "true" is not a number here
    if isinstance(value, bool):
        raise InvalidRequest(f"Value {value!r} is not a valid number")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidRequest(f"Value {value!r} is not a valid number") from None
    else:
        raise InvalidRequest(f"Value {value!r} is not a valid number")
    if not number.is_finite():
        raise InvalidRequest(f"Value {value!r} is not a finite number")
    if number.is_zero():
        return Decimal(0)
    if abs(number.adjusted()) > NUMERIC_MAX_EXPONENT or number.as_tuple().exponent < -NUMERIC_MAX_SCALE:
        raise InvalidRequest(f"Value {value!r} is out of range for a number")
    return number


def encode(data_type, value: Any) -> EncodedValue:
    """Place `value` in the column that `data_type` maps to.

    Raises `UnsupportedDataType` for tags without a rule and
    `InvalidRequest` when the value cannot be coerced to the column type.
    """

    dt = check_data_type(data_type)
    if dt in BOOLEAN_TYPES:
        return EncodedValue(boolean=_to_boolean(value))
    if dt in NUMERIC_TYPES:
        return EncodedValue(number=_to_number(value))
    if isinstance(value, bool):
        # JSON spelling, not Python's
        return EncodedValue(text="true" if value else "false")
    return EncodedValue(text=str(value))


def decode(data_type, row: Mapping[str, Any]) -> Any:
    """Rebuild a runtime value from a row's value columns.

    The column precedence is boolean, then number, then text, whatever
    `data_type` says; the tag (when given) is only checked for support.
    `row` needs the keys `boolean_value`, `number_value`, `text_value`.
    """

    if data_type is not None:
        check_data_type(data_type)

    if row.get("boolean_value") is not None:
        return row["boolean_value"]
    if row.get("number_value") is not None:
        return float(row["number_value"])
    return row.get("text_value")
