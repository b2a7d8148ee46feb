"""
Declarative annotations for mapped entities.

The class-level marker is the ``entity`` decorator; property-level metadata is
attached with ``typing.Annotated``::

    @entity(table='orders')
    class Order:
        id: Annotated[int, Id(), Field('integer', auto_increment=True)]
        total: Annotated[Decimal, Field('decimal', precision=10, scale=2)]
        tags: Annotated[list[str], Field('simple_array')]
        customer: Annotated['Customer', ManyToOne('Customer', inversed_by='orders')]

The annotation classes are plain data containers. Checking them against each
other is done when metadata is read (see ``entitymap.metadata``).
"""
from dataclasses import dataclass
from typing import Any

__all__ = [
    'ENTITY_MARKER',
    'Entity',
    'entity',
    'is_entity',
    'Field',
    'Column',
    'Id',
    'Uuid',
    'JoinTable',
    'OneToOne',
    'OneToMany',
    'ManyToOne',
    'ManyToMany',
    'RELATIONSHIP_ANNOTATIONS',
]

ENTITY_MARKER = '__entity__'


@dataclass(frozen=True)
class Entity:
    """Entity marker, stored on the decorated class."""
    table: str | None = None


def entity(cls=None, *, table: str | None = None):
    """Mark a class as a mapped entity.

    Usable bare (``@entity``) or with an optional table name override
    (``@entity(table='users')``).
    """
    def wrap(klass):
        setattr(klass, ENTITY_MARKER, Entity(table=table))
        return klass

    if cls is None:
        return wrap
    return wrap(cls)


def is_entity(cls: Any) -> bool:
    """Check whether the class itself (not only a base) carries the marker."""
    return isinstance(cls, type) and isinstance(vars(cls).get(ENTITY_MARKER), Entity)


@dataclass(frozen=True)
class Field:
    """Persisted field with an explicit semantic type tag.

    Supported tags: string, char, text, mediumText, longText, integer (int),
    tinyInt, smallInt, bigInt, unsignedBigInt, year, decimal, float, double,
    boolean (bool), date, time, datetime, datetimetz, timestamp, timestamptz,
    uuid, binary (blob), json, simple_json, array, simple_array, enum, set,
    geometry, point, linestring, polygon, ipAddress, macAddress.
    """
    type: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    nullable: bool = False
    default: Any = None
    unique: bool = False
    unsigned: bool = False
    auto_increment: bool = False
    comment: str | None = None


@dataclass(frozen=True)
class Column:
    """Column metadata; a missing type defers to the declared Python type."""
    type: str | None = None
    length: int | None = None
    nullable: bool = False


@dataclass(frozen=True)
class Id:
    """Primary key marker."""


@dataclass(frozen=True)
class Uuid:
    """Generated UUID primary key marker."""


@dataclass(frozen=True)
class JoinTable:
    name: str
    join_column: str
    inverse_column: str


@dataclass(frozen=True)
class OneToOne:
    target_entity: str | type
    mapped_by: str | None = None
    inversed_by: str | None = None
    nullable: bool = True


@dataclass(frozen=True)
class OneToMany:
    target_entity: str | type
    mapped_by: str | None = None
    nullable: bool = True


@dataclass(frozen=True)
class ManyToOne:
    target_entity: str | type
    inversed_by: str | None = None


@dataclass(frozen=True)
class ManyToMany:
    target_entity: str | type
    mapped_by: str | None = None
    inversed_by: str | None = None
    join_table: JoinTable | None = None


RELATIONSHIP_ANNOTATIONS = (OneToOne, OneToMany, ManyToOne, ManyToMany)
