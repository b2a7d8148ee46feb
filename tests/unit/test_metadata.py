"""
Tests for reading and validating entity metadata.
"""
from decimal import Decimal
from typing import Annotated, Any

import pytest
from entitymap.adapters.type_mapping import SemanticType
from entitymap.annotations import Column, Field, Id, JoinTable, ManyToMany
from entitymap.annotations import ManyToOne, OneToMany, OneToOne, entity
from entitymap.exceptions import ConfigurationError, DiscoveryError
from entitymap.hydrator import hydrate
from entitymap.metadata import EntityDescriptor, MetadataCatalog
from entitymap.metadata import RelationshipKind, read_metadata
from entitymap.options import MapperOptions
from entitymap.utils import class_identifier

from tests.fixtures.entities import Comment, Event, Invoice, NotAnEntity
from tests.fixtures.entities import Post, Profile, Tag, User


class TestEntityDescriptor:

    def test_table_override(self):
        metadata = read_metadata(User)
        assert metadata.entity.table == 'users'
        assert metadata.entity.table_name == 'users'
        assert metadata.source_type == class_identifier(User)

    def test_default_table_name(self):
        assert read_metadata(Event).entity.table_name == 'event'
        assert EntityDescriptor('shop.models.OrderLine').table_name == 'order_line'


class TestFields:

    def test_fields_in_declaration_order(self):
        metadata = read_metadata(User)
        assert [f.name for f in metadata.fields] == ['id', 'name', 'active', 'tags', 'nickname']

    def test_field_options(self):
        metadata = read_metadata(User)
        id_field = metadata.get_field('id')
        assert id_field.type is SemanticType.INTEGER
        assert id_field.primary_key is True
        assert id_field.auto_increment is True
        assert metadata.get_field('name').length == 255
        assert metadata.get_field('nickname').nullable is True
        assert metadata.primary_key == ('id',)

    def test_decimal_field(self):
        total = read_metadata(Invoice).get_field('total')
        assert total.type is SemanticType.DECIMAL
        assert (total.precision, total.scale) == (10, 2)
        assert total.comment == 'Invoice total'

    def test_uuid_primary_key(self):
        id_field = read_metadata(Invoice).get_field('id')
        assert id_field.primary_key is True
        assert id_field.generated_uuid is True
        assert id_field.length == 36

    def test_default_value(self):
        assert read_metadata(Invoice).get_field('status').default == 'draft'

    def test_column_annotation(self):
        metadata = read_metadata(Invoice)
        memo = metadata.get_field('memo')
        assert memo.type is SemanticType.TEXT
        assert memo.nullable is True
        quantity = metadata.get_field('quantity')
        assert quantity.type is None
        assert metadata.semantic_type('quantity') is SemanticType.INTEGER

    def test_unannotated_property_is_not_a_field(self):
        metadata = read_metadata(Event)
        assert metadata.get_field('id') is None
        assert 'id' in metadata.properties
        assert metadata.semantic_type('id') is SemanticType.INTEGER
        assert metadata.semantic_type('updated_at') is SemanticType.DATETIME

    def test_explicit_type_preferred_over_declared(self):
        metadata = read_metadata(Event)
        assert metadata.semantic_type('created_at') is SemanticType.TIMESTAMP
        assert metadata.semantic_type('starts_on') is SemanticType.DATE

    def test_property_nullability(self):
        properties = read_metadata(User).properties
        assert properties['name'].admits_null is False
        assert properties['nickname'].admits_null is True
        assert properties['tags'].python_type is list


class TestRelationships:

    def test_post_relationships(self):
        metadata = read_metadata(Post)
        assert metadata.relationship_names == {'comments', 'tags', 'author'}
        assert [f.name for f in metadata.fields] == ['id', 'title']

        comments = metadata.get_relationship('comments')
        assert comments.kind is RelationshipKind.ONE_TO_MANY
        assert comments.target_entity == 'Comment'
        assert comments.mapped_by == 'post'
        assert comments.owning_side is False
        assert comments.nullable is True

        tags = metadata.get_relationship('tags')
        assert tags.kind is RelationshipKind.MANY_TO_MANY
        assert tags.owning_side is True
        assert tags.join_table.name == 'post_tag'
        assert tags.join_table.join_column == 'post_id'
        assert tags.join_table.inverse_column == 'tag_id'

        author = metadata.get_relationship('author')
        assert author.kind is RelationshipKind.MANY_TO_ONE
        assert author.target_entity == class_identifier(User)
        assert author.nullable is None

    def test_inverse_many_to_many(self):
        posts = read_metadata(Tag).get_relationship('posts')
        assert posts.mapped_by == 'tags'
        assert posts.join_table is None
        assert posts.owning_side is False

    def test_many_to_one_targets_class(self):
        post = read_metadata(Comment).get_relationship('post')
        assert post.target_entity == class_identifier(Post)
        assert post.inversed_by == 'comments'

    def test_one_to_one(self):
        owner = read_metadata(Profile).get_relationship('owner')
        assert owner.kind is RelationshipKind.ONE_TO_ONE
        assert owner.inversed_by == 'profile'
        assert owner.nullable is True

    def test_separate_join_table_annotation(self):
        @entity
        class Student:
            courses: Annotated[list, ManyToMany('Course', inversed_by='students'),
                               JoinTable('enrollment', 'student_id', 'course_id')]

        courses = read_metadata(Student).get_relationship('courses')
        assert courses.join_table.name == 'enrollment'


class TestConfigurationErrors:

    def test_many_to_many_both_sides(self):
        @entity
        class Article:
            tags: Annotated[list, ManyToMany('Tag', mapped_by='articles', inversed_by='articles',
                                             join_table=JoinTable('a_t', 'a_id', 't_id'))]

        with pytest.raises(ConfigurationError, match='both mapped_by and inversed_by'):
            read_metadata(Article)

    def test_many_to_many_both_sides_rejected_before_hydration(self):
        @entity
        class Article:
            id: int
            tags: Annotated[list, ManyToMany('Tag', mapped_by='articles', inversed_by='articles')]

        with pytest.raises(ConfigurationError):
            hydrate(Article, {'id': 1})

    def test_many_to_many_neither_side(self):
        @entity
        class Article:
            tags: Annotated[list, ManyToMany('Tag', join_table=JoinTable('a_t', 'a_id', 't_id'))]

        with pytest.raises(ConfigurationError, match='neither'):
            read_metadata(Article)

    def test_owning_many_to_many_requires_join_table(self):
        @entity
        class Article:
            tags: Annotated[list, ManyToMany('Tag', inversed_by='articles')]

        with pytest.raises(ConfigurationError, match='requires a JoinTable'):
            read_metadata(Article)

    def test_inverse_many_to_many_rejects_join_table(self):
        @entity
        class Article:
            tags: Annotated[list, ManyToMany('Tag', mapped_by='articles',
                                             join_table=JoinTable('a_t', 'a_id', 't_id'))]

        with pytest.raises(ConfigurationError):
            read_metadata(Article)

    def test_one_to_one_both_sides(self):
        @entity
        class Passport:
            holder: Annotated[Any, OneToOne('Person', mapped_by='passport', inversed_by='passport')]

        with pytest.raises(ConfigurationError):
            read_metadata(Passport)

    def test_one_to_many_requires_mapped_by(self):
        @entity
        class Basket:
            items: Annotated[list, OneToMany('Item')]

        with pytest.raises(ConfigurationError, match='mapped_by'):
            read_metadata(Basket)

    def test_two_relationships_on_one_property(self):
        @entity
        class Basket:
            owner: Annotated[Any, ManyToOne('Person'), OneToOne('Person', mapped_by='basket')]

        with pytest.raises(ConfigurationError):
            read_metadata(Basket)

    def test_relationship_and_field(self):
        @entity
        class Basket:
            owner: Annotated[Any, ManyToOne('Person'), Field('integer')]

        with pytest.raises(ConfigurationError, match='relationship cannot also be a field'):
            read_metadata(Basket)

    def test_join_table_without_many_to_many(self):
        @entity
        class Basket:
            owner: Annotated[Any, ManyToOne('Person'), JoinTable('x', 'a', 'b')]

        with pytest.raises(ConfigurationError):
            read_metadata(Basket)

    def test_field_and_column(self):
        @entity
        class Basket:
            total: Annotated[int, Field('integer'), Column('integer')]

        with pytest.raises(ConfigurationError):
            read_metadata(Basket)

    @pytest.mark.parametrize('annotation', [
        Field('money'),
        Field('string', precision=5),
        Field('decimal', precision=4, scale=6),
        Field('decimal', precision=0),
        Field('string', length=-1),
        Field('string', auto_increment=True),
        Column('varchar2'),
    ])
    def test_invalid_field(self, annotation):
        @entity
        class Basket:
            value: Annotated[Any, annotation]

        with pytest.raises(ConfigurationError):
            read_metadata(Basket)

    def test_not_an_entity(self):
        with pytest.raises(ConfigurationError, match='not marked as an entity'):
            read_metadata(NotAnEntity)

    def test_marker_is_not_inherited(self):
        class SpecialUser(User):
            pass

        with pytest.raises(ConfigurationError):
            read_metadata(SpecialUser)


class TestReading:

    def test_cached_per_class(self):
        assert read_metadata(User) is read_metadata(User)

    def test_cache_can_be_disabled(self):
        options = MapperOptions(cache_metadata=False)
        first = read_metadata(User, options)
        second = read_metadata(User, options)
        assert first is not second
        assert first == second

    def test_read_by_identifier(self):
        assert read_metadata(class_identifier(Invoice)).source_type == class_identifier(Invoice)

    def test_unknown_identifier(self):
        with pytest.raises(DiscoveryError):
            read_metadata('tests.fixtures.entities.Missing')

    def test_unresolvable_forward_reference(self):
        @entity
        class Order:
            customer: 'DoesNotExist'
            number: Annotated[str, Field('char', length=12)]

        metadata = read_metadata(Order)
        assert [f.name for f in metadata.fields] == ['number']
        assert metadata.semantic_type('customer') is None
        assert metadata.properties['customer'].admits_null is False

    def test_forward_references_mixed_with_annotations(self):
        @entity
        class Shipment:
            carrier: 'Carrier'
            packages: Annotated[list['Parcel'], Field('array')]
            weight: 'Annotated[Decimal, Field("decimal", precision=8, scale=3)]'
            origin: Annotated['Warehouse | None', ManyToOne('Warehouse', inversed_by='shipments')]

        metadata = read_metadata(Shipment)
        assert [f.name for f in metadata.fields] == ['packages', 'weight']
        assert metadata.semantic_type('packages') is SemanticType.ARRAY
        assert metadata.properties['packages'].python_type is list

        weight = metadata.get_field('weight')
        assert weight.type is SemanticType.DECIMAL
        assert (weight.precision, weight.scale) == (8, 3)
        assert metadata.properties['weight'].python_type is Decimal

        origin = metadata.get_relationship('origin')
        assert origin.target_entity == 'Warehouse'
        assert metadata.properties['origin'].admits_null is True
        assert metadata.properties['carrier'].admits_null is False

    def test_malformed_annotation_string(self):
        @entity
        class Ledger:
            amount: 'Annotated[int,'

        with pytest.raises(ConfigurationError, match='invalid annotation'):
            read_metadata(Ledger)

    def test_class_variables_ignored(self):
        from typing import ClassVar

        @entity
        class Counter:
            total: ClassVar[int] = 0
            value: int

        assert list(read_metadata(Counter).properties) == ['value']


class TestCatalog:

    def test_from_classes(self):
        catalog = MetadataCatalog.from_classes([User, Post, class_identifier(Tag)])
        assert len(catalog) == 3
        assert User in catalog
        assert class_identifier(Tag) in catalog
        assert Invoice not in catalog
        assert catalog[User].entity.table == 'users'
        assert catalog.get(Invoice) is None
        assert sorted(catalog) == sorted(class_identifier(c) for c in (User, Post, Tag))

    def test_rejects_misconfigured_class(self):
        @entity
        class Basket:
            items: Annotated[list, OneToMany('Item')]

        with pytest.raises(ConfigurationError):
            MetadataCatalog.from_classes([User, Basket])


if __name__ == '__main__':
    __import__('pytest').main([__file__])
