"""
Entity discovery.

Scanning is done in two phases so that only plausible entity files are ever
imported:

1. Textual: the module name is derived from the file path and top-level
   ``class`` statements decorated with ``entity`` are collected with a
   line scan (no parse, no import).
2. Reflective: the module is imported and each candidate is kept if it
   carries the entity marker and is not abstract.

A file that fails phase 2 is logged and skipped. A root directory that cannot
be read fails the whole scan.
"""
import hashlib
import importlib
import importlib.util
import inspect
import logging
import os
import pathlib
import re
import sys
from collections.abc import Iterator
from types import ModuleType

from entitymap.annotations import is_entity
from entitymap.exceptions import DiscoveryError
from entitymap.options import MapperOptions
from entitymap.utils import class_identifier

logger = logging.getLogger(__name__)

__all__ = ['EntityScanner', 'EntityScan', 'scan', 'module_name_for', 'candidate_classes']

CLASS_PATTERN = re.compile(r'^class\s+([A-Za-z_]\w*)\s*[(:]')
ENTITY_DECORATOR_PATTERN = re.compile(r'^@\s*(?:[A-Za-z_][\w.]*\.)?entity\b', re.IGNORECASE)

_DEFAULT_OPTIONS = MapperOptions()


def module_name_for(path: pathlib.Path) -> tuple[str, pathlib.Path] | None:
    """Derive the dotted module name of a source file from its location.

    Walks up through directories holding an ``__init__.py``.

    Returns
        (module name, import root) or None when no valid name can be formed
    """
    parts = [] if path.stem == '__init__' else [path.stem]
    parent = path.parent
    while (parent / '__init__.py').is_file():
        parts.insert(0, parent.name)
        parent = parent.parent
    if not parts or not all(part.isidentifier() for part in parts):
        return None
    return '.'.join(parts), parent


def candidate_classes(text: str) -> list[str]:
    """Names of top-level classes whose decorator block names ``entity``.

    >>> candidate_classes('@entity\\nclass User:\\n    pass\\n\\nclass Helper:\\n    pass\\n')
    ['User']
    >>> candidate_classes('@entity(\\n    table="t",\\n)\\nclass Tag(Base):\\n    pass\\n')
    ['Tag']
    """
    candidates = []
    decorators: list[str] = []
    depth = 0
    for line in text.splitlines():
        if depth > 0:
            decorators[-1] += line
            depth += line.count('(') - line.count(')')
            continue
        if line.startswith('@'):
            decorators.append(line)
            depth = line.count('(') - line.count(')')
            continue
        match = CLASS_PATTERN.match(line)
        if match and any(ENTITY_DECORATOR_PATTERN.match(d) for d in decorators):
            candidates.append(match.group(1))
        stripped = line.strip()
        if stripped and not stripped.startswith('#'):
            decorators = []
    return candidates


def _same_file(module: ModuleType | None, resolved: pathlib.Path) -> bool:
    filename = getattr(module, '__file__', None)
    return bool(filename) and pathlib.Path(filename).resolve() == resolved


def _private_name(name: str, resolved: pathlib.Path) -> str:
    """Stable module name for a file whose derived name belongs to another module.

    >>> _private_name('models', pathlib.Path('/srv/app/models.py')).startswith('_entitymap_')
    True
    """
    digest = hashlib.sha1(str(resolved).encode('utf-8')).hexdigest()[:12]
    return f'_entitymap_{digest}_{name.replace(".", "_")}'


def _load_module(name: str, path: pathlib.Path) -> ModuleType:
    """Import a module by name, or from its file when not importable by name.

    A file whose derived name already belongs to a different module (another
    file with the same stem, or a standard library module) is loaded under a
    private name instead, so existing ``sys.modules`` entries are never
    replaced and returned identifiers stay loadable.
    """
    resolved = path.resolve()
    module = sys.modules.get(name)
    if _same_file(module, resolved):
        return module

    try:
        spec = importlib.util.find_spec(name)
    except (ImportError, ValueError):
        spec = None
    if module is None and spec is not None and spec.origin \
            and pathlib.Path(spec.origin).resolve() == resolved:
        return importlib.import_module(name)

    if module is not None or spec is not None:
        private = _private_name(name, resolved)
        logger.debug(f'{name} names another module, loading {path} as {private}')
        name = private
        module = sys.modules.get(name)
        if _same_file(module, resolved):
            return module

    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f'No loader for {path}')
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    logger.debug(f'Loaded {name} from {path}')
    return module


class EntityScan:
    """Lazy, restartable sequence of entity class identifiers.

    Every iteration walks the directory again; order follows the directory
    walk and must not be relied upon.
    """

    def __init__(self, scanner: 'EntityScanner', directory: pathlib.Path) -> None:
        self._scanner = scanner
        self._directory = directory

    @property
    def directory(self) -> pathlib.Path:
        return self._directory

    def __iter__(self) -> Iterator[str]:
        return self._scanner._iter_entities(self._directory)

    def __repr__(self) -> str:
        return f'EntityScan({str(self._directory)!r})'


class EntityScanner:
    """Finds non-abstract entity classes below a directory."""

    def __init__(self, options: MapperOptions | None = None) -> None:
        self.options = options or _DEFAULT_OPTIONS

    def scan(self, directory: str | os.PathLike) -> EntityScan:
        """Scan a directory tree for entity classes.

        Raises
            DiscoveryError: the directory does not exist or cannot be read
        """
        root = pathlib.Path(directory)
        if not root.is_dir():
            raise DiscoveryError(f'Not a directory: {root}')
        if not os.access(root, os.R_OK | os.X_OK):
            raise DiscoveryError(f'Directory is not readable: {root}')
        return EntityScan(self, root)

    def _source_files(self, root: pathlib.Path) -> Iterator[pathlib.Path]:
        def onerror(err: OSError) -> None:
            raise DiscoveryError(f'Cannot read directory {err.filename}: {err}') from err

        for dirpath, dirnames, filenames in os.walk(root, onerror=onerror):
            dirnames[:] = sorted(d for d in dirnames
                                 if d != '__pycache__' and not d.startswith('.'))
            for filename in sorted(filenames):
                if pathlib.Path(filename).suffix in self.options.source_suffixes:
                    yield pathlib.Path(dirpath) / filename

    def _candidates(self, path: pathlib.Path) -> tuple[str, list[str]] | None:
        """Phase 1: textual filter. Returns (module name, class names) or None."""
        named = module_name_for(path)
        if named is None:
            logger.debug(f'Skipping {path}: no module name')
            return None
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f'Skipping unreadable source file {path}: {e}')
            return None
        classes = candidate_classes(text)
        if not classes:
            return None
        return named[0], classes

    def _reflect(self, path: pathlib.Path, module_name: str, classes: list[str]) -> list[str]:
        """Phase 2: import the module and keep concrete entity classes."""
        try:
            module = _load_module(module_name, path)
        except Exception as e:
            error = DiscoveryError(f'Cannot load {module_name} from {path}: {e}')
            logger.warning(f'Skipping candidate file: {error}')
            return []

        found = []
        for name in classes:
            cls = getattr(module, name, None)
            if not isinstance(cls, type):
                logger.debug(f'Skipping {module_name}.{name}: not a class after import')
                continue
            if inspect.isabstract(cls):
                logger.debug(f'Skipping abstract class {module_name}.{name}')
                continue
            if not is_entity(cls):
                logger.debug(f'Skipping {module_name}.{name}: no entity marker')
                continue
            found.append(class_identifier(cls))
        return found

    def _iter_entities(self, root: pathlib.Path) -> Iterator[str]:
        for path in self._source_files(root):
            candidates = self._candidates(path)
            if candidates is None:
                continue
            yield from self._reflect(path, *candidates)


def scan(directory: str | os.PathLike, options: MapperOptions | None = None) -> EntityScan:
    """Scan a directory tree for entity classes.
    """
    return EntityScanner(options).scan(directory)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
