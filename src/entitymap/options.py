from dataclasses import dataclass

from libb import ConfigOptions

__all__ = [
    'MapperOptions',
    'DEFAULT_DATETIME_FORMAT',
]

DEFAULT_DATETIME_FORMAT = '%Y-%m-%d %H:%M:%S'


@dataclass
class MapperOptions(ConfigOptions):
    """Options

    Coercion options:
    - strict_decimal: Raise on non-numeric decimal/float values during
      extraction instead of passing them through (default: False)
    - nan_as_null: Treat NaN, NaT and pandas NA as null (default: True)
    - datetime_format: strftime format for extracted temporal values

    Metadata options:
    - cache_metadata: Cache metadata per class (default: True)
    - cache_maxsize: Maximum number of cached classes (default: 256). The
      metadata cache is shared, so a different size resizes it for all readers

    Discovery options:
    - source_suffixes: File suffixes treated as source files (default: .py)
    """
    strict_decimal: bool = False
    nan_as_null: bool = True
    datetime_format: str = DEFAULT_DATETIME_FORMAT
    cache_metadata: bool = True
    cache_maxsize: int = 256
    source_suffixes: tuple[str, ...] = ('.py',)

    def __post_init__(self):
        if isinstance(self.source_suffixes, str):
            self.source_suffixes = (self.source_suffixes,)
        self.source_suffixes = tuple(self.source_suffixes)
        if not self.source_suffixes:
            raise ValueError('source_suffixes must name at least one suffix')
        bad = [s for s in self.source_suffixes if not s.startswith('.')]
        if bad:
            raise ValueError(f'source_suffixes must start with a dot: {bad}')
        if self.cache_maxsize < 1:
            raise ValueError('cache_maxsize must be a positive integer')
        if not self.datetime_format:
            raise ValueError('datetime_format must not be empty')
