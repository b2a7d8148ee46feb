"""
Tests for entity discovery.
"""
import logging
import pathlib
import sys
import textwrap
import uuid

import pytest
from entitymap.exceptions import DiscoveryError
from entitymap.metadata import MetadataCatalog
from entitymap.options import MapperOptions
from entitymap.scanner import EntityScan, EntityScanner, candidate_classes
from entitymap.scanner import module_name_for, scan
from entitymap.utils import load_class

MODELS = """\
from abc import ABC, abstractmethod
from typing import Annotated

from entitymap import Field, Id, entity


@entity(table='customers')
class Customer:
    id: Annotated[int, Id(), Field('integer')]
    name: Annotated[str, Field('string')]


@entity
class Shape(ABC):
    id: int

    @abstractmethod
    def area(self):
        ...


@entity
class Square(Shape):
    side: Annotated[float, Field('double')]

    def area(self):
        return self.side ** 2


class Helper:
    pass
"""

BROKEN = """\
from entitymap import entity

raise RuntimeError('cannot import me')


@entity
class Broken:
    id: int
"""

ENTITY_FILE = """\
from entitymap import entity


@entity
class {name}:
    pass
"""

NOT_MARKED = """\
def entity(cls):
    return cls


@entity
class Impostor:
    pass
"""


def write(path: pathlib.Path, text: str = '') -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding='utf-8')
    return path


@pytest.fixture
def package(tmp_path):
    """Package tree with a unique top-level name so imports never collide.
    """
    name = f'pkg_{uuid.uuid4().hex[:8]}'
    root = tmp_path / name
    write(root / '__init__.py')
    write(root / 'models.py', MODELS)
    write(root / 'sub' / '__init__.py')
    write(root / 'sub' / 'orders.py', """\
        from typing import Annotated

        from entitymap import Field, entity


        @entity
        class Order:
            number: Annotated[str, Field('char', length=12)]
        """)
    write(root / 'util.py', 'def helper():\n    return 1\n')
    return name, root


class TestCandidateClasses:

    def test_decorated_classes_only(self):
        assert candidate_classes(MODELS) == ['Customer', 'Shape', 'Square']

    def test_qualified_decorator(self):
        text = '@entitymap.entity(table="x")\nclass Thing:\n    pass\n'
        assert candidate_classes(text) == ['Thing']

    def test_stacked_decorators(self):
        text = '@entity\n@dataclass(frozen=True)\nclass Point:\n    x: float\n'
        assert candidate_classes(text) == ['Point']

    def test_nested_classes_ignored(self):
        text = 'class Outer:\n    @entity\n    class Inner:\n        pass\n'
        assert candidate_classes(text) == []

    def test_decorator_block_resets(self):
        text = '@entity\ndef build():\n    pass\n\nclass Plain:\n    pass\n'
        assert candidate_classes(text) == []


class TestModuleName:

    def test_package_module(self, package):
        name, root = package
        assert module_name_for(root / 'sub' / 'orders.py') == (f'{name}.sub.orders', root.parent)

    def test_package_init(self, package):
        name, root = package
        assert module_name_for(root / '__init__.py') == (name, root.parent)

    def test_loose_file(self, tmp_path):
        path = write(tmp_path / 'loose.py')
        assert module_name_for(path) == ('loose', tmp_path)

    def test_invalid_name(self, tmp_path):
        path = write(tmp_path / 'not-a-module.py')
        assert module_name_for(path) is None


class TestScan:

    def test_finds_concrete_entities(self, package):
        name, root = package
        found = set(scan(root))
        assert found == {
            f'{name}.models.Customer',
            f'{name}.models.Square',
            f'{name}.sub.orders.Order',
            }

    def test_import_by_name(self, package, monkeypatch):
        name, root = package
        monkeypatch.syspath_prepend(str(root.parent))
        assert f'{name}.sub.orders.Order' in set(scan(root / 'sub'))

    def test_restartable(self, package):
        _, root = package
        result = scan(root)
        assert isinstance(result, EntityScan)
        assert result.directory == root
        assert sorted(result) == sorted(result)
        assert len(list(result)) == 3

    def test_lazy(self, package):
        _, root = package
        result = scan(root)
        write(root / 'late.py', 'from entitymap import entity\n\n\n@entity\nclass Late:\n    pass\n')
        assert any(identifier.endswith('.late.Late') for identifier in result)

    def test_skips_broken_file(self, package, caplog):
        name, root = package
        write(root / 'broken.py', BROKEN)
        with caplog.at_level(logging.WARNING, logger='entitymap.scanner'):
            found = set(scan(root))
        assert f'{name}.models.Customer' in found
        assert not any('Broken' in identifier for identifier in found)
        assert 'broken' in caplog.text

    def test_skips_unmarked_class(self, package):
        _, root = package
        write(root / 'impostor.py', NOT_MARKED)
        assert not any('Impostor' in identifier for identifier in scan(root))

    def test_empty_directory(self, tmp_path):
        assert list(scan(tmp_path)) == []

    def test_source_suffixes(self, package):
        _, root = package
        assert list(EntityScanner(MapperOptions(source_suffixes=('.pyw',))).scan(root)) == []

    def test_missing_directory(self, tmp_path):
        with pytest.raises(DiscoveryError):
            scan(tmp_path / 'missing')

    def test_file_is_not_a_directory(self, package):
        _, root = package
        with pytest.raises(DiscoveryError):
            scan(root / 'models.py')


class TestModuleNameCollisions:

    def test_same_stem_in_sibling_directories(self, tmp_path):
        stem = f'models_{uuid.uuid4().hex[:8]}'
        write(tmp_path / 'a' / f'{stem}.py', ENTITY_FILE.format(name='Customer'))
        write(tmp_path / 'b' / f'{stem}.py', ENTITY_FILE.format(name='Order'))

        found = list(scan(tmp_path))
        assert len(found) == 2
        assert f'{stem}.Customer' in found
        classes = {load_class(identifier).__name__ for identifier in found}
        assert classes == {'Customer', 'Order'}
        # loaded modules are reused on a second walk
        assert list(scan(tmp_path)) == found

    def test_stdlib_name_is_not_replaced(self, tmp_path):
        import json

        write(tmp_path / 'json.py', ENTITY_FILE.format(name='Payload'))
        found = list(scan(tmp_path))

        assert sys.modules['json'] is json
        assert len(found) == 1
        assert found[0] != 'json.Payload'
        assert load_class(found[0]).__name__ == 'Payload'


class TestCatalogFromDirectory:

    def test_reads_discovered_metadata(self, package):
        name, root = package
        catalog = MetadataCatalog.from_directory(root)
        assert len(catalog) == 3
        customer = catalog[f'{name}.models.Customer']
        assert customer.entity.table_name == 'customers'
        assert [f.name for f in customer.fields] == ['id', 'name']
        assert catalog[f'{name}.models.Square'].semantic_type('side').value == 'double'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
