"""
Bidirectional value coercion keyed on semantic type.

This module converts loosely typed row values to typed property values
(hydration, row → object) and typed property values back to storage-friendly
row values (extraction, object → row).

It provides:
1. One ``Coercion`` pair (hydrate, extract) per ``SemanticType`` in ``COERCIONS``
2. ``hydrate_value`` / ``extract_value`` entry points
3. Common null handling: None, NaN, NaT and pandas NA never reach a rule
4. Unwrapping of NumPy scalars to Python values before any rule runs

Type conversion principles:
1. Coercion is a pure function of (semantic type, value, options)
2. Null in, null out, in both directions
3. JSON decode failures degrade to null; every other failure raises
   CoercionError

Usage:
    >>> hydrate_value('integer', '42')
    42
    >>> extract_value('boolean', True)
    1
    >>> extract_value('simple_array', ['a', 'b'])
    'a,b'
"""
import datetime
import decimal
import json
import logging
import math
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd

from entitymap.adapters.type_mapping import INTEGER_TYPES, JSON_TYPES
from entitymap.adapters.type_mapping import PASSTHROUGH_TYPES, STRING_TYPES
from entitymap.adapters.type_mapping import SemanticType, TZ_TEMPORAL_TYPES
from entitymap.adapters.type_mapping import UTC_TEMPORAL_TYPES
from entitymap.exceptions import CoercionError, ConfigurationError
from entitymap.options import MapperOptions

logger = logging.getLogger(__name__)

__all__ = [
    'Coercion',
    'COERCIONS',
    'hydrate_value',
    'extract_value',
    'is_null',
    'is_numeric',
]

UTC = datetime.timezone.utc

NUMERIC_PATTERN = re.compile(r'^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$')
FALSE_STRINGS: set[str] = {'', '0', 'false', 'f', 'no', 'n', 'off'}

_DEFAULT_OPTIONS = MapperOptions()

# errors raised by rules that mean "this value does not fit this type"
_CONVERSION_ERRORS = (ValueError, TypeError, OverflowError, OSError, decimal.InvalidOperation)


def is_null(value: Any, nan_as_null: bool = True) -> bool:
    """Check whether a value is treated as NULL.

    >>> is_null(None)
    True
    >>> is_null(float('nan'))
    True
    >>> is_null(float('nan'), nan_as_null=False)
    False
    >>> is_null('')
    False
    """
    if value is None:
        return True
    if not nan_as_null:
        return False
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str | bytes | bool | int):
        return False
    try:
        return bool(pd.api.types.is_scalar(value) and pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_numeric(value: Any) -> bool:
    """Check whether a value is a number or a numeric-looking string.

    >>> is_numeric('1.5e3')
    True
    >>> is_numeric('12abc')
    False
    >>> is_numeric(True)
    False
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, int | float | decimal.Decimal):
        return True
    if isinstance(value, str):
        return NUMERIC_PATTERN.match(value) is not None
    return False


def _unwrap_numpy(value: Any) -> Any:
    """Convert NumPy and pandas scalars to the matching Python value."""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.datetime64):
        return pd.Timestamp(value).to_pydatetime()
    if isinstance(value, np.generic):
        return value.item()
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode('utf-8')
    return value


# Integer family

def _to_int(value: Any, options: MapperOptions) -> int:
    value = _decode(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError('non-finite number cannot be an integer')
        return int(value)
    if isinstance(value, decimal.Decimal):
        if not value.is_finite():
            raise ValueError('non-finite number cannot be an integer')
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        if NUMERIC_PATTERN.match(text):
            return int(decimal.Decimal(text))
        raise ValueError('not a numeric string')
    raise TypeError(f'cannot cast {type(value).__name__} to integer')


# Float, double and decimal

def _hydrate_float(value: Any, options: MapperOptions) -> Any:
    if is_numeric(value):
        return float(value)
    return value


def _hydrate_decimal(value: Any, options: MapperOptions) -> Any:
    """Decimals keep their literal digits; floats go through their shortest repr."""
    if not is_numeric(value):
        return value
    if isinstance(value, decimal.Decimal):
        return value
    if isinstance(value, float):
        return decimal.Decimal(repr(value))
    if isinstance(value, str):
        return decimal.Decimal(value.strip())
    return decimal.Decimal(value)


def _extract_numeric(value: Any, options: MapperOptions) -> Any:
    if is_numeric(value):
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            number = decimal.Decimal(repr(value))
        elif isinstance(value, str):
            number = decimal.Decimal(value.strip())
        else:
            number = value
        if number.is_finite():
            return format(number, 'f')
    if options.strict_decimal:
        raise ValueError('non-numeric value for numeric field')
    logger.warning(f'Extracting non-numeric value {value!r} for numeric field unchanged')
    return value


# Boolean

def _to_bool(value: Any, options: MapperOptions) -> bool:
    value = _decode(value)
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)


def _extract_bool(value: Any, options: MapperOptions) -> int:
    return 1 if _to_bool(value, options) else 0


# Temporal

def _today() -> datetime.date:
    return datetime.datetime.now(UTC).date()


def _from_epoch(value: Any) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(float(value), tz=UTC)


def _as_utc(dt: datetime.datetime) -> datetime.datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _assume_utc(dt: datetime.datetime) -> datetime.datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=UTC)
    return dt


def _parse_datetime(value: Any, default: datetime.datetime | None = None) -> datetime.datetime:
    """Parse a raw value into a (possibly naive) datetime."""
    value = _decode(value)
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    if isinstance(value, datetime.time):
        return datetime.datetime.combine(_today(), value)
    if isinstance(value, int | float | decimal.Decimal) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise TypeError(f'cannot parse {type(value).__name__} as a date/time')
    text = value.strip()
    if not text:
        raise ValueError('empty date/time string')
    return dateutil.parser.parse(text, default=default)


def _hydrate_date(value: Any, options: MapperOptions) -> datetime.datetime:
    """Calendar date as written, at midnight UTC."""
    parsed = _parse_datetime(value)
    return datetime.datetime.combine(parsed.date(), datetime.time.min, tzinfo=UTC)


def _hydrate_time(value: Any, options: MapperOptions) -> datetime.datetime:
    """Time of day on the current UTC calendar date."""
    default = datetime.datetime.combine(_today(), datetime.time.min)
    return _as_utc(_parse_datetime(value, default=default))


def _hydrate_datetime(value: Any, options: MapperOptions) -> datetime.datetime:
    if is_numeric(value):
        return _from_epoch(value)
    return _as_utc(_parse_datetime(value))


def _hydrate_datetimetz(value: Any, options: MapperOptions) -> datetime.datetime:
    if is_numeric(value):
        return _from_epoch(value)
    return _assume_utc(_parse_datetime(value))


def _to_datetime(value: Any) -> datetime.datetime:
    if is_numeric(value):
        return _from_epoch(value)
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    if isinstance(value, datetime.time):
        return datetime.datetime.combine(_today(), value)
    raise TypeError(f'cannot format {type(value).__name__} as a date/time')


def _extract_temporal(value: Any, options: MapperOptions) -> str:
    if isinstance(value, str):
        return value
    return _to_datetime(value).strftime(options.datetime_format)


def _extract_utc_temporal(value: Any, options: MapperOptions) -> str:
    """Aware values are shifted to UTC before formatting."""
    if isinstance(value, str):
        return value
    dt = _to_datetime(value)
    if dt.tzinfo is not None and dt.tzinfo.utcoffset(dt) is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime(options.datetime_format)


# JSON and arrays

def _json_default(value: Any) -> Any:
    value = _unwrap_numpy(value)
    if isinstance(value, decimal.Decimal):
        return format(value, 'f')
    if isinstance(value, datetime.datetime | datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, set | frozenset | tuple):
        return list(value)
    if isinstance(value, bytes):
        return value.decode('utf-8')
    if isinstance(value, int | float | str | bool):
        return value
    raise TypeError(f'{type(value).__name__} is not JSON serializable')


def _dump_json(value: Any) -> str:
    return json.dumps(value, separators=(',', ':'), default=_json_default)


def _hydrate_json(value: Any, options: MapperOptions) -> Any:
    try:
        value = _decode(value)
        if not isinstance(value, str):
            return value
        return json.loads(value)
    except ValueError as e:
        logger.debug(f'JSON decode failed, hydrating as null: {e}')
        return None


def _extract_json(value: Any, options: MapperOptions) -> str:
    return _dump_json(value)


def _hydrate_array(value: Any, options: MapperOptions) -> Any:
    value = _decode(value)
    if isinstance(value, list | tuple | set | frozenset):
        return list(value)
    if isinstance(value, dict):
        return value
    if not isinstance(value, str):
        return [value]
    if value == '':
        return []
    if value.lstrip()[:1] in {'[', '{'}:
        try:
            return json.loads(value)
        except ValueError as e:
            logger.debug(f'Array JSON decode failed, splitting on commas: {e}')
    return value.split(',')


def _extract_array(value: Any, options: MapperOptions) -> Any:
    if isinstance(value, str):
        return value
    return _dump_json(value)


def _hydrate_simple_array(value: Any, options: MapperOptions) -> list[str]:
    value = _decode(value)
    if isinstance(value, list | tuple | set | frozenset):
        return [str(item) for item in value]
    if isinstance(value, str):
        return value.split(',') if value else []
    return [str(value)]


def _extract_simple_array(value: Any, options: MapperOptions) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list | tuple | set | frozenset):
        return ','.join(str(_unwrap_numpy(item)) for item in value)
    return str(value)


# Strings and pass-through

def _hydrate_string(value: Any, options: MapperOptions) -> str:
    value = _decode(value)
    if isinstance(value, str):
        return value
    return str(value)


def _passthrough(value: Any, options: MapperOptions) -> Any:
    return value


@dataclass(frozen=True)
class Coercion:
    """Hydrate/extract rule pair for one semantic type."""
    hydrate: Callable[[Any, MapperOptions], Any]
    extract: Callable[[Any, MapperOptions], Any]


COERCIONS: dict[SemanticType, Coercion] = {}
for _t in INTEGER_TYPES:
    COERCIONS[_t] = Coercion(_to_int, _to_int)
for _t in STRING_TYPES:
    COERCIONS[_t] = Coercion(_hydrate_string, _passthrough)
for _t in PASSTHROUGH_TYPES:
    COERCIONS[_t] = Coercion(_passthrough, _passthrough)
for _t in JSON_TYPES:
    COERCIONS[_t] = Coercion(_hydrate_json, _extract_json)
for _t in UTC_TEMPORAL_TYPES:
    COERCIONS[_t] = Coercion(_hydrate_datetime, _extract_utc_temporal)
for _t in TZ_TEMPORAL_TYPES:
    COERCIONS[_t] = Coercion(_hydrate_datetimetz, _extract_temporal)
COERCIONS[SemanticType.FLOAT] = Coercion(_hydrate_float, _extract_numeric)
COERCIONS[SemanticType.DOUBLE] = Coercion(_hydrate_float, _extract_numeric)
COERCIONS[SemanticType.DECIMAL] = Coercion(_hydrate_decimal, _extract_numeric)
COERCIONS[SemanticType.BOOLEAN] = Coercion(_to_bool, _extract_bool)
COERCIONS[SemanticType.DATE] = Coercion(_hydrate_date, _extract_temporal)
COERCIONS[SemanticType.TIME] = Coercion(_hydrate_time, _extract_temporal)
COERCIONS[SemanticType.ARRAY] = Coercion(_hydrate_array, _extract_array)
COERCIONS[SemanticType.SIMPLE_ARRAY] = Coercion(_hydrate_simple_array, _extract_simple_array)
del _t

_missing = set(SemanticType) - set(COERCIONS)
if _missing:
    raise RuntimeError(f'No coercion registered for: {sorted(t.value for t in _missing)}')
del _missing


def _resolve(semantic_type: SemanticType | str) -> SemanticType:
    try:
        return SemanticType.parse(semantic_type)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _apply(direction: str, semantic_type: SemanticType | str | None, value: Any,
           options: MapperOptions | None) -> Any:
    options = options or _DEFAULT_OPTIONS
    if is_null(value, options.nan_as_null):
        return None
    value = _unwrap_numpy(value)
    if semantic_type is None:
        return value
    st = _resolve(semantic_type)
    rule = getattr(COERCIONS[st], direction)
    try:
        return rule(value, options)
    except _CONVERSION_ERRORS as e:
        raise CoercionError(f'Cannot {direction} value: {e}', semantic_type=st, value=value) from e


def hydrate_value(semantic_type: SemanticType | str | None, value: Any,
                  options: MapperOptions | None = None) -> Any:
    """Convert a raw row value to its typed property value.

    Args:
        semantic_type: Semantic type tag; None passes the value through
        value: Raw value as returned by a database driver
        options: Mapper options, defaults used when omitted

    Returns
        Typed value, or None for null input

    Raises
        CoercionError: value cannot be converted by any fallback rule
        ConfigurationError: unknown semantic type tag
    """
    return _apply('hydrate', semantic_type, value, options)


def extract_value(semantic_type: SemanticType | str | None, value: Any,
                  options: MapperOptions | None = None) -> Any:
    """Convert a typed property value to a storage-friendly row value.

    Args:
        semantic_type: Semantic type tag; None passes the value through
        value: Property value
        options: Mapper options, defaults used when omitted

    Returns
        Row value, or None for null input

    Raises
        CoercionError: value cannot be converted
        ConfigurationError: unknown semantic type tag
    """
    return _apply('extract', semantic_type, value, options)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
