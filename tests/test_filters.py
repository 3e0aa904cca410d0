"""
Tests for filter parsing and query compilation.
"""

import logging

import pytest

from datastore_connector import (
    ComparisonPredicate,
    EqualityPredicate,
    Filter,
    FilterCompiler,
    InvalidFilterError,
    InvalidIdentifierError,
    UnsupportedPredicate,
)


@pytest.fixture
def compiler(client):
    return FilterCompiler(client)


def native_filters(compiled):
    return [(f.property_name, f.operator, f.value) for f in compiled.query.filters]


class TestFilterCoercion:
    """Test turning ORM objects into Filters."""

    def test_none_is_an_empty_filter(self):
        query_filter = Filter.coerce(None)

        assert not query_filter.has_criteria()
        assert query_filter.identifier is None

    def test_bare_where_clause(self):
        query_filter = Filter.coerce({"type": "Animal"})

        assert query_filter.where == {"type": "Animal"}

    def test_full_filter(self):
        query_filter = Filter.coerce({"where": {"age": 2}, "limit": 5, "skip": 10})

        assert query_filter.where == {"age": 2}
        assert query_filter.limit == 5
        assert query_filter.skip == 10

    def test_offset_is_an_alias_of_skip(self):
        assert Filter.coerce({"offset": 3}).skip == 3

    def test_where_id_is_the_identifier(self):
        assert Filter.coerce({"where": {"id": "12"}}).identifier == "12"
        assert Filter.coerce({"id": 12}).where_identifier == 12

    def test_top_level_id_next_to_filter_keys(self):
        query_filter = Filter.coerce({"id": 12, "where": {"type": "Animal"}})

        assert query_filter.identifier == 12
        assert query_filter.where_identifier is None

    def test_invalid_limit_raises(self):
        with pytest.raises(InvalidFilterError):
            Filter.coerce({"limit": -1})

    def test_non_mapping_raises(self):
        with pytest.raises(InvalidFilterError):
            Filter.coerce("age > 3")

    @pytest.mark.parametrize("value", [{"where": {}}, {"order": []}, {"fields": {}}, {"limit": 5}])
    def test_has_criteria(self, value):
        assert Filter.coerce(value).has_criteria()

    def test_zero_limit_and_skip_are_not_criteria(self):
        assert not Filter.coerce({"limit": 0, "skip": 0}).has_criteria()

    def test_id_comparison_is_not_a_lookup(self):
        query_filter = Filter.coerce({"where": {"id": {"gt": 1}}})

        assert query_filter.where_identifier is None
        assert query_filter.identifier is None

    def test_id_list_is_a_lookup(self):
        assert Filter.coerce({"where": {"id": {"in": [1, 2]}}}).where_identifier == {"in": [1, 2]}


class TestWhereCoercion:
    """Test reading the where argument of count, update and destroy_all."""

    @pytest.mark.parametrize("where", [{"limit": 5}, {"order": 12}, {"fields": "basic"}, {"skip": 2}])
    def test_filter_key_names_are_properties(self, where):
        query_filter = Filter.for_where(where)

        assert query_filter.where == where
        assert query_filter.limit is None
        assert query_filter.skip is None
        assert query_filter.order is None
        assert query_filter.fields is None

    def test_where_wrapper_is_unwrapped(self):
        query_filter = Filter.for_where({"where": {"age": 2}, "limit": 1, "fields": {"age": True}})

        assert query_filter.where == {"age": 2}
        assert query_filter.limit is None
        assert query_filter.fields is None

    def test_wrapper_keeps_top_level_id(self):
        query_filter = Filter.for_where({"id": 12, "where": {}})

        assert query_filter.identifier == 12

    def test_none_is_an_empty_where(self):
        assert Filter.for_where(None).where is None

    def test_filter_instance_keeps_only_where_and_id(self):
        query_filter = Filter.for_where(Filter.coerce({"where": {"age": 2}, "limit": 1}))

        assert query_filter.where == {"age": 2}
        assert query_filter.limit is None

    def test_non_mapping_raises(self):
        with pytest.raises(InvalidFilterError):
            Filter.for_where(["age"])


class TestPredicates:
    """Test where clause parsing into predicate variants."""

    def test_literal_is_equality(self):
        assert Filter.coerce({"age": 2}).predicates() == [EqualityPredicate("age", 2)]

    def test_list_literal_is_equality(self):
        predicates = Filter.coerce({"emails": ["a@example.com"]}).predicates()

        assert predicates == [EqualityPredicate("emails", ["a@example.com"])]

    @pytest.mark.parametrize("operation,native", [
        ("lt", "<"),
        ("lte", "<="),
        ("gt", ">"),
        ("gte", ">="),
        ("ne", "!="),
        ("in", "IN"),
        ("neq", "!="),
        ("inq", "IN"),
        ("nin", "NOT_IN"),
    ])
    def test_operator_objects_are_comparisons(self, operation, native):
        predicates = Filter.coerce({"age": {operation: 3}}).predicates()

        assert predicates == [ComparisonPredicate("age", native, 3)]

    def test_eq_operator_is_equality(self):
        assert Filter.coerce({"age": {"eq": 3}}).predicates() == [EqualityPredicate("age", 3)]

    def test_range_on_one_field(self):
        predicates = Filter.coerce({"age": {"gte": 2, "lt": 28}}).predicates()

        assert predicates == [
            ComparisonPredicate("age", ">=", 2),
            ComparisonPredicate("age", "<", 28),
        ]

    def test_unknown_operator_is_unsupported(self):
        predicates = Filter.coerce({"name": {"like": "Cl%"}}).predicates()

        assert predicates == [UnsupportedPredicate("name", "like", "Cl%")]

    def test_and_clauses_are_flattened(self):
        predicates = Filter.coerce({"and": [{"type": "Animal"}, {"age": {"gt": 1}}]}).predicates()

        assert predicates == [
            EqualityPredicate("type", "Animal"),
            ComparisonPredicate("age", ">", 1),
        ]

    def test_or_is_rejected(self):
        with pytest.raises(InvalidFilterError):
            Filter.coerce({"or": [{"age": 2}, {"age": 27}]}).predicates()


class TestFilterCompiler:
    """Test compiling filters into native queries."""

    def test_equality_and_comparison_predicates(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({
            "where": {"type": "Animal", "age": {"lt": 28}},
        }))

        assert compiled.query.kind == "customer"
        assert native_filters(compiled) == [("type", "=", "Animal"), ("age", "<", 28)]

    def test_unsupported_operator_raises(self, compiler):
        with pytest.raises(InvalidFilterError, match="name.like"):
            compiler.compile("customer", Filter.coerce({"where": {"name": {"like": "Cl%"}}}))

    def test_descending_order(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({"order": "age DESC"}))

        assert compiled.query.order == ["-age"]

    def test_direction_is_case_insensitive(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({"order": ["age desc", "name asc"]}))

        assert compiled.query.order == ["-age", "name"]

    def test_unknown_direction_is_ascending(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({"order": "age UP"}))

        assert compiled.query.order == ["age"]

    def test_order_without_direction_is_skipped(self, compiler, caplog):
        with caplog.at_level(logging.WARNING, logger="datastore_connector.filters"):
            compiled = compiler.compile("customer", Filter.coerce({"order": "age"}))

        assert compiled is not None
        assert compiled.query.order == []
        assert "No order provided" in caplog.text

    def test_empty_order_list_compiles_to_nothing(self, compiler):
        assert compiler.compile("customer", Filter.coerce({"where": {"age": 2}, "order": []})) is None

    def test_limit_and_skip(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({"limit": 10, "skip": 20}))

        assert compiled.limit == 10
        assert compiled.offset == 20

    def test_projection_keeps_only_true_fields(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({
            "fields": {"emails": True, "age": False, "name": 1},
        }))

        assert compiled.query.projection == ["emails"]

    def test_all_false_fields_select_everything(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({"fields": {"age": False}}))

        assert compiled.query.projection == []

    def test_fields_as_list(self, compiler):
        compiled = compiler.compile("customer", Filter.coerce({"fields": ["name", "age"]}))

        assert compiled.query.projection == ["name", "age"]

    def test_keys_only_ignores_fields(self, compiler):
        compiled = compiler.compile(
            "customer", Filter.coerce({"fields": {"emails": True}}), keys_only=True
        )

        assert compiled.query.projection == ["__key__"]

    def test_id_predicate_matches_the_key(self, compiler, client):
        compiled = compiler.compile("customer", Filter.coerce({"and": [{"id": "5"}]}))

        assert native_filters(compiled) == [("__key__", "=", client.key("customer", 5))]

    def test_null_id_predicate_is_rejected(self, compiler):
        with pytest.raises(InvalidIdentifierError):
            compiler.compile("customer", Filter.coerce({"where": {"id": None}}))

    def test_id_comparison_matches_the_key(self, compiler, client):
        compiled = compiler.compile("customer", Filter.coerce({"where": {"id": {"gt": 3}}}))

        assert native_filters(compiled) == [("__key__", ">", client.key("customer", 3))]

    def test_id_list_operator_inside_where_is_rejected(self, compiler):
        with pytest.raises(InvalidFilterError):
            compiler.compile("customer", Filter.coerce({"and": [{"id": {"in": [1, 2]}}]}))
