"""
Class identifier helpers shared by metadata reading and discovery.
"""
import importlib
import logging
import re
from typing import Any

from entitymap.exceptions import DiscoveryError

logger = logging.getLogger(__name__)

__all__ = ['class_identifier', 'load_class', 'snake_case']


def class_identifier(cls: type) -> str:
    """Fully-qualified identifier of a class.

    >>> class_identifier(dict)
    'builtins.dict'
    """
    return f'{cls.__module__}.{cls.__qualname__}'


def snake_case(name: str) -> str:
    """Convert a class name to a snake_case table name.

    >>> snake_case('OrderLine')
    'order_line'
    >>> snake_case('HTTPRequestLog')
    'http_request_log'
    """
    name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    name = re.sub(r'([a-z\d])([A-Z])', r'\1_\2', name)
    return name.lower()


def load_class(identifier: str) -> type:
    """Resolve a fully-qualified identifier to a class.

    The longest importable module prefix is imported and the remaining parts
    are resolved as (possibly nested) attributes.

    Raises
        DiscoveryError: the identifier does not name a loadable class
    """
    parts = identifier.split('.')
    for i in range(len(parts) - 1, 0, -1):
        module_name = '.'.join(parts[:i])
        try:
            obj: Any = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            if e.name and module_name.startswith(e.name):
                continue
            raise DiscoveryError(f'Cannot import {module_name}: {e}') from e
        try:
            for attr in parts[i:]:
                obj = getattr(obj, attr)
        except AttributeError as e:
            raise DiscoveryError(f'Cannot resolve {identifier}: {e}') from e
        if not isinstance(obj, type):
            raise DiscoveryError(f'{identifier} is not a class')
        logger.debug(f'Loaded class {identifier}')
        return obj
    raise DiscoveryError(f'Cannot load class {identifier}')


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
