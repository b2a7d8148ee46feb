"""
Semantic type resolution for entity properties.

This module provides the closed set of semantic type tags understood by the
coercion engine and the rules for resolving a tag when a property carries no
explicit one:

1. Explicit ``Field``/``Column`` type tag (resolved in entitymap.metadata)
2. The property's declared Python type, matched by name case-insensitively

The module focuses solely on type identification, not conversion.
"""
import enum
import logging
import types
import typing
from typing import Any

logger = logging.getLogger(__name__)

__all__ = [
    'SemanticType',
    'INTEGER_TYPES',
    'NUMERIC_TYPES',
    'TEMPORAL_TYPES',
    'UTC_TEMPORAL_TYPES',
    'TZ_TEMPORAL_TYPES',
    'JSON_TYPES',
    'ARRAY_TYPES',
    'STRING_TYPES',
    'PASSTHROUGH_TYPES',
    'LENGTH_TYPES',
    'python_type_names',
    'infer_semantic_type',
    'unwrap_type',
    'admits_null',
]


class SemanticType(str, enum.Enum):
    """Closed set of semantic type tags."""

    STRING = 'string'
    CHAR = 'char'
    TEXT = 'text'
    MEDIUM_TEXT = 'mediumText'
    LONG_TEXT = 'longText'
    INTEGER = 'integer'
    TINY_INT = 'tinyInt'
    SMALL_INT = 'smallInt'
    BIG_INT = 'bigInt'
    UNSIGNED_BIG_INT = 'unsignedBigInt'
    YEAR = 'year'
    DECIMAL = 'decimal'
    FLOAT = 'float'
    DOUBLE = 'double'
    BOOLEAN = 'boolean'
    DATE = 'date'
    TIME = 'time'
    DATETIME = 'datetime'
    DATETIMETZ = 'datetimetz'
    TIMESTAMP = 'timestamp'
    TIMESTAMPTZ = 'timestamptz'
    UUID = 'uuid'
    BINARY = 'binary'
    JSON = 'json'
    SIMPLE_JSON = 'simple_json'
    ARRAY = 'array'
    SIMPLE_ARRAY = 'simple_array'
    ENUM = 'enum'
    SET = 'set'
    GEOMETRY = 'geometry'
    POINT = 'point'
    LINESTRING = 'linestring'
    POLYGON = 'polygon'
    IP_ADDRESS = 'ipAddress'
    MAC_ADDRESS = 'macAddress'

    @classmethod
    def parse(cls, tag: 'str | SemanticType') -> 'SemanticType':
        """Resolve a tag case-insensitively, accepting short aliases.

        >>> SemanticType.parse('BIGINT')
        <SemanticType.BIG_INT: 'bigInt'>
        >>> SemanticType.parse('bool')
        <SemanticType.BOOLEAN: 'boolean'>
        """
        if isinstance(tag, cls):
            return tag
        if not isinstance(tag, str):
            raise ValueError(f'Semantic type tag must be a string, got {type(tag).__name__}')
        key = tag.strip().lower()
        try:
            return _LOOKUP[key]
        except KeyError:
            raise ValueError(f'Unknown semantic type: {tag!r}') from None


_ALIASES = {
    'int': SemanticType.INTEGER,
    'bool': SemanticType.BOOLEAN,
    'blob': SemanticType.BINARY,
}

_LOOKUP: dict[str, SemanticType] = {member.value.lower(): member for member in SemanticType}
_LOOKUP.update(_ALIASES)

INTEGER_TYPES = frozenset({
    SemanticType.INTEGER,
    SemanticType.TINY_INT,
    SemanticType.SMALL_INT,
    SemanticType.BIG_INT,
    SemanticType.UNSIGNED_BIG_INT,
    SemanticType.YEAR,
})
NUMERIC_TYPES = frozenset({SemanticType.DECIMAL, SemanticType.FLOAT, SemanticType.DOUBLE})
UTC_TEMPORAL_TYPES = frozenset({SemanticType.DATETIME, SemanticType.TIMESTAMP})
TZ_TEMPORAL_TYPES = frozenset({SemanticType.DATETIMETZ, SemanticType.TIMESTAMPTZ})
TEMPORAL_TYPES = frozenset({SemanticType.DATE, SemanticType.TIME}) | UTC_TEMPORAL_TYPES | TZ_TEMPORAL_TYPES
JSON_TYPES = frozenset({SemanticType.JSON, SemanticType.SIMPLE_JSON})
ARRAY_TYPES = frozenset({SemanticType.ARRAY, SemanticType.SIMPLE_ARRAY})
STRING_TYPES = frozenset({
    SemanticType.STRING,
    SemanticType.CHAR,
    SemanticType.TEXT,
    SemanticType.MEDIUM_TEXT,
    SemanticType.LONG_TEXT,
})
PASSTHROUGH_TYPES = frozenset({
    SemanticType.UUID,
    SemanticType.BINARY,
    SemanticType.ENUM,
    SemanticType.SET,
    SemanticType.GEOMETRY,
    SemanticType.POINT,
    SemanticType.LINESTRING,
    SemanticType.POLYGON,
    SemanticType.IP_ADDRESS,
    SemanticType.MAC_ADDRESS,
})
# types that accept a length option
LENGTH_TYPES = frozenset({SemanticType.STRING, SemanticType.CHAR, SemanticType.UUID,
                          SemanticType.IP_ADDRESS, SemanticType.MAC_ADDRESS})

# declared Python type name (lower case) -> semantic type
python_type_names = {
    'int': SemanticType.INTEGER,
    'integer': SemanticType.INTEGER,
    'float': SemanticType.FLOAT,
    'double': SemanticType.DOUBLE,
    'decimal': SemanticType.DECIMAL,
    'bool': SemanticType.BOOLEAN,
    'boolean': SemanticType.BOOLEAN,
    'str': SemanticType.STRING,
    'string': SemanticType.STRING,
    'datetime': SemanticType.DATETIME,
    'datetimeimmutable': SemanticType.DATETIME,
    'timestamp': SemanticType.TIMESTAMP,
    'date': SemanticType.DATE,
    'time': SemanticType.TIME,
    'dict': SemanticType.JSON,
    'mapping': SemanticType.JSON,
    'list': SemanticType.ARRAY,
    'tuple': SemanticType.ARRAY,
    'sequence': SemanticType.ARRAY,
    'uuid': SemanticType.UUID,
    'bytes': SemanticType.BINARY,
    'bytearray': SemanticType.BINARY,
}

_UNION_TYPES = (typing.Union, types.UnionType)


def _strip_annotated(tp: Any) -> Any:
    while typing.get_origin(tp) is typing.Annotated:
        tp = typing.get_args(tp)[0]
    return tp


def admits_null(tp: Any) -> bool:
    """Check whether a declared type accepts None.

    Unresolved forward references are checked textually.

    >>> admits_null(int | None)
    True
    >>> admits_null(int)
    False
    >>> admits_null('Customer | None')
    True
    """
    tp = _strip_annotated(tp)
    if tp is Any or tp is None or tp is type(None):
        return True
    if isinstance(tp, typing.ForwardRef):
        tp = tp.__forward_arg__
    if isinstance(tp, str):
        text = tp.replace(' ', '')
        return (text.startswith('Optional[') or text in {'Any', 'None', 'typing.Any'}
                or '|None' in text or 'None|' in text)
    if typing.get_origin(tp) in _UNION_TYPES:
        return any(admits_null(arg) for arg in typing.get_args(tp))
    return False


def unwrap_type(tp: Any) -> Any:
    """Reduce a declared type to the single type that names it.

    Strips ``Annotated``, drops ``None`` from unions and replaces generic
    aliases with their origin. Unions of several non-None types are returned
    unchanged.
    """
    tp = _strip_annotated(tp)
    if typing.get_origin(tp) in _UNION_TYPES:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) != 1:
            return tp
        tp = _strip_annotated(args[0])
    origin = typing.get_origin(tp)
    if origin is not None:
        return origin
    return tp


def _type_name(tp: Any) -> str | None:
    if isinstance(tp, typing.ForwardRef):
        tp = tp.__forward_arg__
    if isinstance(tp, str):
        text = tp.replace(' ', '')
        if text.startswith('Optional[') and text.endswith(']'):
            text = text[len('Optional['):-1]
        text = text.replace('|None', '').replace('None|', '')
        text = text.split('[', 1)[0]
        return text.rsplit('.', 1)[-1] or None
    return getattr(tp, '__name__', None)


def infer_semantic_type(tp: Any) -> SemanticType | None:
    """Infer a semantic type from a declared Python type.

    Returns None when the type has no counterpart, in which case values are
    passed through unmodified.

    >>> import datetime
    >>> infer_semantic_type(datetime.datetime | None)
    <SemanticType.DATETIME: 'datetime'>
    >>> infer_semantic_type(list[str])
    <SemanticType.ARRAY: 'array'>
    >>> infer_semantic_type(object) is None
    True
    """
    tp = unwrap_type(tp)
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return SemanticType.ENUM
    name = _type_name(tp)
    if not name:
        return None
    semantic_type = python_type_names.get(name.lower())
    if semantic_type is None:
        logger.debug(f'No semantic type for declared type {name}')
    return semantic_type


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
