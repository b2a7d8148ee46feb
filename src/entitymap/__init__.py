"""
Declarative entity mapping between relational rows and typed objects.

Entities are plain classes marked with ``@entity`` whose properties carry
``typing.Annotated`` metadata. The package reads that metadata and converts
rows to instances (hydration) and instances to rows (extraction):

- Module functions: entitymap.hydrate(User, row), entitymap.extract(user)
- Hydrator methods: Hydrator(options).hydrate(User, row)
"""
__version__ = '0.1.0'

from entitymap.adapters.type_conversion import extract_value, hydrate_value
from entitymap.adapters.type_mapping import SemanticType
from entitymap.annotations import Column, Entity, Field, Id, JoinTable
from entitymap.annotations import ManyToMany, ManyToOne, OneToMany, OneToOne
from entitymap.annotations import Uuid, entity, is_entity
from entitymap.exceptions import CoercionError, ConfigurationError
from entitymap.exceptions import DiscoveryError, EntityMapError
from entitymap.hydrator import Hydrator, configure, extract, extract_all
from entitymap.hydrator import hydrate, hydrate_all
from entitymap.metadata import EntityDescriptor, EntityMetadata
from entitymap.metadata import FieldDescriptor, JoinTableDescriptor
from entitymap.metadata import MetadataCatalog, RelationshipDescriptor
from entitymap.metadata import RelationshipKind, clear_metadata_cache
from entitymap.metadata import read_metadata
from entitymap.options import MapperOptions
from entitymap.scanner import EntityScanner, scan
from entitymap.utils import class_identifier, load_class

__all__ = [
    'entity',
    'is_entity',
    'Entity',
    'Field',
    'Column',
    'Id',
    'Uuid',
    'JoinTable',
    'OneToOne',
    'OneToMany',
    'ManyToOne',
    'ManyToMany',
    'SemanticType',
    'hydrate_value',
    'extract_value',
    'Hydrator',
    'configure',
    'hydrate',
    'hydrate_all',
    'extract',
    'extract_all',
    'read_metadata',
    'clear_metadata_cache',
    'EntityDescriptor',
    'FieldDescriptor',
    'JoinTableDescriptor',
    'RelationshipDescriptor',
    'RelationshipKind',
    'EntityMetadata',
    'MetadataCatalog',
    'MapperOptions',
    'EntityScanner',
    'scan',
    'class_identifier',
    'load_class',
    'EntityMapError',
    'ConfigurationError',
    'CoercionError',
    'DiscoveryError',
]
