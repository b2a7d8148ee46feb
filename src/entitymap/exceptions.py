"""
Entity mapping exception classes.
"""
from typing import Any


class EntityMapError(Exception):
    """Base class for all entity mapping errors.
    """


class ConfigurationError(EntityMapError):
    """Self-contradictory entity, field or relationship annotation.
    """


class DiscoveryError(EntityMapError):
    """Error scanning a directory or loading a candidate entity class.
    """


class CoercionError(EntityMapError):
    """Raw value cannot be converted to its declared semantic type.
    """

    def __init__(self, message: str, *, semantic_type: Any = None,
                 value: Any = None, field: str | None = None) -> None:
        self.reason = message
        self.semantic_type = semantic_type
        self.value = value
        self.field = field
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.reason]
        if self.field is not None:
            parts.append(f'field={self.field!r}')
        if self.semantic_type is not None:
            parts.append(f'type={getattr(self.semantic_type, "value", self.semantic_type)!r}')
        parts.append(f'value={self.value!r}')
        return ' '.join(parts)

    def for_field(self, field: str) -> 'CoercionError':
        """Return a copy of this error naming the offending property.
        """
        return CoercionError(self.reason, semantic_type=self.semantic_type,
                             value=self.value, field=field)
