"""
Entity metadata model.

Metadata is read once per class from the ``entity`` marker and the
``typing.Annotated`` property annotations, validated, and cached. The
descriptors are immutable after construction.
"""
import enum
import inspect
import logging
import typing
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType, UnionType
from typing import Any

from entitymap.adapters.type_mapping import INTEGER_TYPES, SemanticType
from entitymap.adapters.type_mapping import admits_null, infer_semantic_type
from entitymap.adapters.type_mapping import unwrap_type
from entitymap.annotations import ENTITY_MARKER, RELATIONSHIP_ANNOTATIONS
from entitymap.annotations import Column, Field, Id, JoinTable, ManyToMany
from entitymap.annotations import ManyToOne, OneToMany, OneToOne, Uuid
from entitymap.annotations import is_entity
from entitymap.cache import Cache
from entitymap.exceptions import ConfigurationError
from entitymap.options import MapperOptions
from entitymap.scanner import scan
from entitymap.utils import class_identifier, load_class, snake_case

logger = logging.getLogger(__name__)

__all__ = [
    'EntityDescriptor',
    'FieldDescriptor',
    'JoinTableDescriptor',
    'RelationshipKind',
    'RelationshipDescriptor',
    'PropertyInfo',
    'EntityMetadata',
    'MetadataCatalog',
    'read_metadata',
    'clear_metadata_cache',
]

_DEFAULT_OPTIONS = MapperOptions()


@dataclass(frozen=True)
class EntityDescriptor:
    source_type: str
    table: str | None = None

    @property
    def table_name(self) -> str:
        """Table override, else the class name in snake_case."""
        return self.table or snake_case(self.source_type.rsplit('.', 1)[-1])


@dataclass(frozen=True)
class FieldDescriptor:
    """Mapped property. ``type`` is None when no explicit tag was declared."""
    name: str
    type: SemanticType | None = None
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    nullable: bool = False
    default: Any = None
    unique: bool = False
    unsigned: bool = False
    auto_increment: bool = False
    comment: str | None = None
    primary_key: bool = False
    generated_uuid: bool = False


@dataclass(frozen=True)
class JoinTableDescriptor:
    name: str
    join_column: str
    inverse_column: str


class RelationshipKind(enum.Enum):
    ONE_TO_ONE = 'OneToOne'
    ONE_TO_MANY = 'OneToMany'
    MANY_TO_ONE = 'ManyToOne'
    MANY_TO_MANY = 'ManyToMany'


_KINDS = {
    OneToOne: RelationshipKind.ONE_TO_ONE,
    OneToMany: RelationshipKind.ONE_TO_MANY,
    ManyToOne: RelationshipKind.MANY_TO_ONE,
    ManyToMany: RelationshipKind.MANY_TO_MANY,
}


@dataclass(frozen=True)
class RelationshipDescriptor:
    """Relationship metadata. ``nullable`` is None for kinds without the option."""
    name: str
    kind: RelationshipKind
    target_entity: str
    mapped_by: str | None = None
    inversed_by: str | None = None
    nullable: bool | None = None
    join_table: JoinTableDescriptor | None = None

    @property
    def owning_side(self) -> bool:
        """The owning side holds the foreign key or junction table reference."""
        return self.mapped_by is None


@dataclass(frozen=True)
class PropertyInfo:
    name: str
    python_type: Any
    admits_null: bool


@dataclass(frozen=True)
class EntityMetadata:
    """Everything known about one mapped class."""
    entity: EntityDescriptor
    fields: tuple[FieldDescriptor, ...]
    relationships: tuple[RelationshipDescriptor, ...]
    properties: Mapping[str, PropertyInfo]
    _fields_by_name: Mapping[str, FieldDescriptor] = field(init=False, repr=False, compare=False)
    _semantic_types: Mapping[str, SemanticType | None] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'properties', MappingProxyType(dict(self.properties)))
        by_name = {f.name: f for f in self.fields}
        object.__setattr__(self, '_fields_by_name', MappingProxyType(by_name))
        semantic_types = {}
        for name, prop in self.properties.items():
            descriptor = by_name.get(name)
            if descriptor is not None and descriptor.type is not None:
                semantic_types[name] = descriptor.type
            else:
                semantic_types[name] = infer_semantic_type(prop.python_type)
        object.__setattr__(self, '_semantic_types', MappingProxyType(semantic_types))

    @property
    def source_type(self) -> str:
        return self.entity.source_type

    @property
    def primary_key(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.primary_key)

    @property
    def relationship_names(self) -> frozenset[str]:
        return frozenset(r.name for r in self.relationships)

    def get_field(self, name: str) -> FieldDescriptor | None:
        return self._fields_by_name.get(name)

    def get_relationship(self, name: str) -> RelationshipDescriptor | None:
        for relationship in self.relationships:
            if relationship.name == name:
                return relationship
        return None

    def semantic_type(self, name: str) -> SemanticType | None:
        """Explicit field type if declared, else inferred from the property type."""
        return self._semantic_types.get(name)


def _is_classvar(tp: Any) -> bool:
    if isinstance(tp, str):
        return tp.replace('typing.', '').startswith('ClassVar')
    return tp is typing.ClassVar or typing.get_origin(tp) is typing.ClassVar


def _resolve_annotation(klass: type, name: str, tp: Any) -> Any:
    """Resolve one annotation in the namespace of the class declaring it.

    Unresolvable forward references are kept as declared.
    """
    holder = type(f'_{klass.__name__}Annotation', (), {
        '__annotations__': {name: tp},
        '__module__': klass.__module__,
        })
    try:
        return typing.get_type_hints(holder, localns=dict(vars(klass)), include_extras=True)[name]
    except NameError:
        logger.debug(f'Unresolved annotation {klass.__qualname__}.{name}: {tp}')
        return tp
    except Exception as e:
        raise ConfigurationError(f'{class_identifier(klass)}.{name}: '
                                 f'invalid annotation {tp!r}: {e}') from e


def _raw_annotations(cls: type) -> dict[str, Any]:
    """Annotations across the MRO, resolved one by one.

    Used when forward references prevent resolving the class as a whole.
    """
    hints: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, tp in inspect.get_annotations(klass).items():
            hints[name] = _resolve_annotation(klass, name, tp)
    return hints


def _declared_properties(cls: type) -> dict[str, Any]:
    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except Exception as e:
        logger.debug(f'Falling back to per-annotation resolution for {cls.__qualname__}: {e}')
        hints = _raw_annotations(cls)
    return {name: tp for name, tp in hints.items() if not _is_classvar(tp)}


def _annotation_items(tp: Any) -> list[Any]:
    """Metadata objects attached to a declared type, including inside unions."""
    if typing.get_origin(tp) is typing.Annotated:
        return list(tp.__metadata__)
    if typing.get_origin(tp) in {typing.Union, UnionType}:
        items = []
        for arg in typing.get_args(tp):
            items.extend(_annotation_items(arg))
        return items
    return []


def _parse_type(where: str, tag: Any) -> SemanticType:
    try:
        return SemanticType.parse(tag)
    except ValueError as e:
        raise ConfigurationError(f'{where}: {e}') from e


def _build_field(where: str, name: str, annotation: Field | Column | None,
                 primary_key: bool, generated_uuid: bool) -> FieldDescriptor:
    if annotation is None:
        return FieldDescriptor(name=name, primary_key=primary_key, generated_uuid=generated_uuid)

    semantic_type = None
    if annotation.type is not None:
        semantic_type = _parse_type(where, annotation.type)
    if annotation.length is not None and annotation.length < 0:
        raise ConfigurationError(f'{where}: length must not be negative')

    if isinstance(annotation, Column):
        return FieldDescriptor(
            name=name,
            type=semantic_type,
            length=annotation.length,
            nullable=annotation.nullable,
            primary_key=primary_key,
            generated_uuid=generated_uuid,
            )

    precision, scale = annotation.precision, annotation.scale
    if (precision is not None or scale is not None) and semantic_type is not SemanticType.DECIMAL:
        raise ConfigurationError(f'{where}: precision/scale only apply to decimal fields')
    if precision is not None and precision < 1:
        raise ConfigurationError(f'{where}: precision must be positive')
    if scale is not None and scale < 0:
        raise ConfigurationError(f'{where}: scale must not be negative')
    if precision is not None and scale is not None and scale > precision:
        raise ConfigurationError(f'{where}: scale {scale} exceeds precision {precision}')
    if annotation.auto_increment and semantic_type not in INTEGER_TYPES:
        raise ConfigurationError(f'{where}: auto_increment requires an integer type')

    return FieldDescriptor(
        name=name,
        type=semantic_type,
        length=annotation.length,
        precision=precision,
        scale=scale,
        nullable=annotation.nullable,
        default=annotation.default,
        unique=annotation.unique,
        unsigned=annotation.unsigned,
        auto_increment=annotation.auto_increment,
        comment=annotation.comment,
        primary_key=primary_key,
        generated_uuid=generated_uuid,
        )


def _target_identifier(where: str, target: Any) -> str:
    if isinstance(target, type):
        return class_identifier(target)
    if isinstance(target, str) and target.strip():
        return target.strip()
    raise ConfigurationError(f'{where}: target_entity must be a class or a class name')


def _build_join_table(where: str, join_table: JoinTable) -> JoinTableDescriptor:
    if not (join_table.name and join_table.join_column and join_table.inverse_column):
        raise ConfigurationError(f'{where}: JoinTable requires name, join_column and inverse_column')
    return JoinTableDescriptor(join_table.name, join_table.join_column, join_table.inverse_column)


def _require_one_side(where: str, kind: RelationshipKind,
                      mapped_by: str | None, inversed_by: str | None) -> None:
    if mapped_by and inversed_by:
        raise ConfigurationError(f'{where}: {kind.value} declares both mapped_by and inversed_by')
    if not mapped_by and not inversed_by:
        raise ConfigurationError(f'{where}: {kind.value} declares neither mapped_by nor inversed_by')


def _build_relationship(where: str, name: str, annotation: Any,
                        join_tables: list[JoinTable]) -> RelationshipDescriptor:
    kind = _KINDS[type(annotation)]
    target = _target_identifier(where, annotation.target_entity)
    mapped_by = getattr(annotation, 'mapped_by', None)
    inversed_by = getattr(annotation, 'inversed_by', None)
    join_table = getattr(annotation, 'join_table', None)

    if join_tables:
        if kind is not RelationshipKind.MANY_TO_MANY:
            raise ConfigurationError(f'{where}: JoinTable only applies to ManyToMany')
        if join_table is not None or len(join_tables) > 1:
            raise ConfigurationError(f'{where}: more than one JoinTable declared')
        join_table = join_tables[0]

    nullable = None
    if kind is RelationshipKind.MANY_TO_MANY:
        _require_one_side(where, kind, mapped_by, inversed_by)
        if not mapped_by and join_table is None:
            raise ConfigurationError(f'{where}: owning ManyToMany requires a JoinTable')
        if mapped_by and join_table is not None:
            raise ConfigurationError(f'{where}: inverse ManyToMany must not declare a JoinTable')
    elif kind is RelationshipKind.ONE_TO_ONE:
        _require_one_side(where, kind, mapped_by, inversed_by)
        nullable = annotation.nullable
    elif kind is RelationshipKind.ONE_TO_MANY:
        if not mapped_by:
            raise ConfigurationError(f'{where}: OneToMany requires mapped_by')
        nullable = annotation.nullable

    return RelationshipDescriptor(
        name=name,
        kind=kind,
        target_entity=target,
        mapped_by=mapped_by or None,
        inversed_by=inversed_by or None,
        nullable=nullable,
        join_table=_build_join_table(where, join_table) if join_table is not None else None,
        )


def _build_metadata(cls: type) -> EntityMetadata:
    identifier = class_identifier(cls)
    if not is_entity(cls):
        raise ConfigurationError(f'{identifier} is not marked as an entity')
    marker = vars(cls)[ENTITY_MARKER]

    fields: list[FieldDescriptor] = []
    relationships: list[RelationshipDescriptor] = []
    properties: dict[str, PropertyInfo] = {}

    for name, tp in _declared_properties(cls).items():
        where = f'{identifier}.{name}'
        items = _annotation_items(tp)
        field_annotations = [i for i in items if isinstance(i, Field | Column)]
        relationship_annotations = [i for i in items if isinstance(i, RELATIONSHIP_ANNOTATIONS)]
        join_tables = [i for i in items if isinstance(i, JoinTable)]
        primary_key = any(isinstance(i, Id) for i in items)
        generated_uuid = any(isinstance(i, Uuid) for i in items)

        if len(field_annotations) > 1:
            raise ConfigurationError(f'{where}: more than one Field/Column annotation')
        if len(relationship_annotations) > 1:
            raise ConfigurationError(f'{where}: more than one relationship annotation')

        if relationship_annotations:
            if field_annotations or primary_key or generated_uuid:
                raise ConfigurationError(f'{where}: relationship cannot also be a field')
            relationships.append(_build_relationship(where, name, relationship_annotations[0], join_tables))
        elif join_tables:
            raise ConfigurationError(f'{where}: JoinTable without ManyToMany')
        elif field_annotations or primary_key or generated_uuid:
            annotation = field_annotations[0] if field_annotations else None
            fields.append(_build_field(where, name, annotation, primary_key, generated_uuid))

        properties[name] = PropertyInfo(name, unwrap_type(tp), admits_null(tp))

    logger.debug(f'Read metadata for {identifier}: {len(fields)} fields, '
                 f'{len(relationships)} relationships')
    return EntityMetadata(
        entity=EntityDescriptor(source_type=identifier, table=marker.table),
        fields=tuple(fields),
        relationships=tuple(relationships),
        properties=properties,
        )


def read_metadata(cls: type | str, options: MapperOptions | None = None) -> EntityMetadata:
    """Read and validate the metadata of an entity class.

    Args:
        cls: Entity class or its fully-qualified identifier
        options: Mapper options, controls caching

    Returns
        EntityMetadata for the class

    Raises
        ConfigurationError: the class is not an entity or its annotations
            contradict each other
        DiscoveryError: the identifier does not name a loadable class
    """
    options = options or _DEFAULT_OPTIONS
    if isinstance(cls, str):
        cls = load_class(cls)
    if not options.cache_metadata:
        return _build_metadata(cls)

    cache = Cache.get_instance()
    metadata_cache = cache.get_metadata_cache(options.cache_maxsize)
    with cache.lock:
        metadata = metadata_cache.get(cls)
        if metadata is None:
            metadata = _build_metadata(cls)
            metadata_cache[cls] = metadata
        return metadata


def clear_metadata_cache() -> None:
    Cache.get_instance().clear_cache('entity_metadata')


class MetadataCatalog:
    """Immutable map from class identifier to entity metadata.

    Built once, usually at startup, and shared read-only afterwards.
    """

    def __init__(self, entries: Iterable[EntityMetadata]) -> None:
        self._entries = MappingProxyType({m.source_type: m for m in entries})

    @classmethod
    def from_classes(cls, classes: Iterable[type | str],
                     options: MapperOptions | None = None) -> 'MetadataCatalog':
        return cls(read_metadata(klass, options) for klass in classes)

    @classmethod
    def from_directory(cls, directory: str, options: MapperOptions | None = None) -> 'MetadataCatalog':
        """Discover entity classes under a directory and read their metadata."""
        return cls.from_classes(scan(directory, options), options)

    def _key(self, cls: type | str) -> str:
        return cls if isinstance(cls, str) else class_identifier(cls)

    def get(self, cls: type | str) -> EntityMetadata | None:
        return self._entries.get(self._key(cls))

    def __getitem__(self, cls: type | str) -> EntityMetadata:
        return self._entries[self._key(cls)]

    def __contains__(self, cls: object) -> bool:
        if not isinstance(cls, str | type):
            return False
        return self._key(cls) in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f'MetadataCatalog({sorted(self._entries)!r})'
