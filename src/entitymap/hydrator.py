"""
Hydration (row → entity) and extraction (entity → row).

Instances are created without running ``__init__``; values are assigned
through the class's ``__hydrate_field__(name, value)`` hook when it defines
one, otherwise written directly to the instance. A property whose declared
type does not admit None is left unset when its row value is null.
"""
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import pandas as pd

from entitymap.adapters.type_conversion import extract_value, hydrate_value
from entitymap.exceptions import CoercionError
from entitymap.metadata import EntityMetadata, MetadataCatalog, read_metadata
from entitymap.options import MapperOptions
from entitymap.row import RowAdapter, iter_rows
from entitymap.utils import load_class

from libb import load_options

logger = logging.getLogger(__name__)

__all__ = [
    'Hydrator',
    'configure',
    'hydrate',
    'hydrate_all',
    'extract',
    'extract_all',
]

HYDRATE_HOOK = '__hydrate_field__'


def _slot_names(cls: type) -> set[str]:
    names: set[str] = set()
    for klass in cls.__mro__:
        slots = vars(klass).get('__slots__', ())
        if isinstance(slots, str):
            slots = (slots,)
        names.update(slots)
    return names


def _assigned_value(entity: Any, name: str) -> tuple[bool, Any]:
    """Value of a property assigned on the instance; class defaults do not count."""
    instance_dict = getattr(entity, '__dict__', None)
    if instance_dict is not None and name in instance_dict:
        return True, instance_dict[name]
    if name in _slot_names(type(entity)):
        try:
            return True, object.__getattribute__(entity, name)
        except AttributeError:
            return False, None
    return False, None


@dataclass
class Hydrator:
    """Converts rows to entities and back using entity metadata.

    Stateless apart from its options and optional catalog, so one instance
    can be shared between threads.
    """
    options: MapperOptions | None = None
    catalog: MetadataCatalog | None = None

    def __post_init__(self):
        self.options = self.options or MapperOptions()

    def metadata_for(self, cls: type | str) -> EntityMetadata:
        if self.catalog is not None:
            metadata = self.catalog.get(cls)
            if metadata is not None:
                return metadata
        return read_metadata(cls, self.options)

    def hydrate(self, cls: type | str, row: Any) -> Any:
        """Create an instance of ``cls`` populated from a row.

        Args:
            cls: Entity class or its fully-qualified identifier
            row: Mapping or record object of column name to raw value

        Returns
            New entity instance

        Raises
            CoercionError: a value cannot be converted, names the property
        """
        if isinstance(cls, str):
            cls = load_class(cls)
        metadata = self.metadata_for(cls)
        data = RowAdapter(row).to_dict()

        instance = cls.__new__(cls)
        setter = getattr(instance, HYDRATE_HOOK, None)
        relationships = metadata.relationship_names

        for column, raw in data.items():
            prop = metadata.properties.get(column)
            if prop is None:
                logger.debug(f'No property for column {column} on {metadata.source_type}')
                continue
            if column in relationships:
                logger.debug(f'Skipping relationship property {column} on {metadata.source_type}')
                continue
            try:
                value = hydrate_value(metadata.semantic_type(column), raw, self.options)
            except CoercionError as e:
                raise e.for_field(column) from e
            if value is None and not prop.admits_null:
                logger.debug(f'Leaving non-nullable {column} unset for null value')
                continue
            if setter is not None:
                setter(column, value)
            else:
                object.__setattr__(instance, column, value)
        return instance

    def hydrate_all(self, cls: type | str, rows: Iterable[Any] | pd.DataFrame) -> list[Any]:
        """Hydrate every row of a result set, including a pandas DataFrame.
        """
        if isinstance(cls, str):
            cls = load_class(cls)
        return [self.hydrate(cls, row) for row in iter_rows(rows)]

    def extract(self, entity: Any, fields: Iterable[str] | None = None) -> dict[str, Any]:
        """Build a row from the assigned properties of an entity.

        Args:
            entity: Entity instance
            fields: Optional subset of property names, all when omitted

        Returns
            Dictionary of property name to storage value. Unassigned and
            unknown properties are omitted.

        Raises
            CoercionError: a value cannot be converted, names the property
        """
        metadata = self.metadata_for(type(entity))
        names = list(metadata.properties) if fields is None else list(fields)
        relationships = metadata.relationship_names

        row: dict[str, Any] = {}
        for name in names:
            if name not in metadata.properties or name in relationships:
                logger.debug(f'Skipping {name}: not a mapped property of {metadata.source_type}')
                continue
            assigned, value = _assigned_value(entity, name)
            if not assigned:
                continue
            try:
                row[name] = extract_value(metadata.semantic_type(name), value, self.options)
            except CoercionError as e:
                raise e.for_field(name) from e
        return row

    def extract_all(self, entities: Iterable[Any],
                    fields: Iterable[str] | None = None) -> list[dict[str, Any]]:
        fields = list(fields) if fields is not None else None
        return [self.extract(entity, fields) for entity in entities]


@load_options(cls=MapperOptions)
def configure(options: MapperOptions | dict[str, Any] | str,
              config: Any | None = None, **kw: Any) -> Hydrator:
    """Create a Hydrator from options

    Args:
        options: Can be:
                - MapperOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Hydrator using the options
    """
    if not isinstance(options, MapperOptions):
        options_func = load_options(cls=MapperOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)
    return Hydrator(options)


def hydrate(cls: type | str, row: Any, options: MapperOptions | None = None) -> Any:
    """Hydrate one row into a new instance of ``cls``.
    """
    return Hydrator(options).hydrate(cls, row)


def hydrate_all(cls: type | str, rows: Iterable[Any] | pd.DataFrame,
                options: MapperOptions | None = None) -> list[Any]:
    """Hydrate every row of a result set.
    """
    return Hydrator(options).hydrate_all(cls, rows)


def extract(entity: Any, fields: Iterable[str] | None = None,
            options: MapperOptions | None = None) -> dict[str, Any]:
    """Extract a row from an entity.
    """
    return Hydrator(options).extract(entity, fields)


def extract_all(entities: Iterable[Any], fields: Iterable[str] | None = None,
                options: MapperOptions | None = None) -> list[dict[str, Any]]:
    """Extract a row from every entity.
    """
    return Hydrator(options).extract_all(entities, fields)
