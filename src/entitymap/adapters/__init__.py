"""
Entity mapping adapters package.

This package provides the following components:

- type_mapping: Semantic type tags and resolution from declared Python types (no conversion)
- type_conversion: Hydrate/extract coercion rules for each semantic type

Type conversion principles:
1. Row → entity: ``hydrate_value`` keyed on the property's semantic type
2. Entity → row: ``extract_value`` keyed on the same semantic type
"""
from entitymap.adapters.type_conversion import COERCIONS, Coercion
from entitymap.adapters.type_conversion import extract_value, hydrate_value
from entitymap.adapters.type_conversion import is_null
from entitymap.adapters.type_mapping import SemanticType, infer_semantic_type
