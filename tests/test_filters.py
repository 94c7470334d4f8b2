"""Tests for structured filters, the builder and the metadata matcher."""

import pytest

from portastore.errors import InvalidQueryError, OperatorNotSupportedError
from portastore.filters import (
    Filter,
    FilterBuilder,
    FilterVisitor,
    Op,
    and_,
    contains,
    eq,
    gt,
    gte,
    in_,
    like,
    lt,
    lte,
    matches,
    ne,
    nin,
    not_,
    or_,
)
from portastore.testing import Document, User


METADATA = {
    "title": "Intro to vectors",
    "lang": "en",
    "views": 120,
    "tags": ["ml", "search"],
    "author": None,
    "source": {"site": "blog", "rank": 3},
}


class TestFilterValidation:
    """Tests for structural validation."""

    def test_valid_tree(self):
        f = and_(eq("lang", "en"), not_(in_("tags", ["spam"])))
        assert f.err() is None
        f.validate()

    def test_empty_logical_nodes(self):
        assert and_().err() == "AND requires at least one child"
        assert or_().err() == "OR requires at least one child"
        assert Filter(Op.NOT).err() == "NOT requires exactly one child"

    def test_condition_requires_field(self):
        assert "requires a field" in eq("", 1).err()

    def test_membership_requires_list(self):
        assert "requires a list" in Filter(Op.IN, "lang", "en").err()

    def test_like_requires_string(self):
        assert "string pattern" in Filter(Op.LIKE, "title", 5).err()

    def test_child_errors_surface(self):
        f = or_(eq("lang", "en"), and_())
        with pytest.raises(InvalidQueryError, match="AND requires"):
            f.validate()


class TestFilterBuilder:
    """Tests for FilterBuilder."""

    def test_uses_json_names(self):
        f = FilterBuilder(User).where("email").eq("a@b.c")
        assert f.field == "mail"
        assert f.err() is None

    def test_unknown_field(self):
        f = FilterBuilder(Document).where("titel").eq("x")
        with pytest.raises(InvalidQueryError, match="unknown field 'titel' for Document"):
            f.validate()

    def test_unknown_field_inside_tree(self):
        b = FilterBuilder(Document)
        f = b.and_(b.where("lang").eq("en"), b.not_(b.where("nope").eq(1)))
        with pytest.raises(InvalidQueryError, match="unknown field"):
            f.validate()

    def test_kind_checks(self):
        b = FilterBuilder(Document)
        assert b.where("views").gt(10).err() is None
        assert b.where("title").like("Intro%").err() is None
        assert b.where("tags").contains("ml").err() is None
        assert b.where("tags").gt(1).err() is not None
        assert b.where("views").like("1%").err() is not None
        assert b.where("views").contains(1).err() is not None

    def test_membership_values_are_lists(self):
        f = FilterBuilder(Document).where("lang").in_(("en", "de"))
        assert f.value == ["en", "de"]


class TestMetadataMatcher:
    """Tests for evaluating filters against metadata."""

    @pytest.mark.parametrize("f,expected", [
        (eq("lang", "en"), True),
        (eq("lang", "de"), False),
        (ne("lang", "de"), True),
        (gt("views", 100), True),
        (gte("views", 120), True),
        (lt("views", 120), False),
        (lte("views", 120), True),
        (in_("lang", ["en", "fr"]), True),
        (nin("lang", ["en", "fr"]), False),
        (like("title", "Intro%"), True),
        (like("title", "intro%"), False),
        (like("title", "Intro to _ectors"), True),
        (contains("tags", "ml"), True),
        (contains("tags", "nlp"), False),
        (contains("title", "vectors"), True),
        (eq("source.site", "blog"), True),
        (gt("source.rank", 5), False),
    ])
    def test_conditions(self, f, expected):
        assert matches(f, METADATA) is expected

    def test_logical_nodes(self):
        assert matches(and_(eq("lang", "en"), gt("views", 100)), METADATA)
        assert not matches(and_(eq("lang", "en"), gt("views", 500)), METADATA)
        assert matches(or_(eq("lang", "de"), contains("tags", "ml")), METADATA)
        assert matches(not_(eq("lang", "de")), METADATA)

    def test_missing_fields(self):
        assert not matches(eq("missing", 1), METADATA)
        assert not matches(gt("missing", 1), METADATA)
        assert not matches(in_("missing", [1]), METADATA)
        assert matches(ne("missing", 1), METADATA)
        assert matches(nin("missing", [1]), METADATA)

    def test_null_values(self):
        assert matches(eq("author", None), METADATA)
        assert not matches(gt("author", 1), METADATA)

    def test_incompatible_comparison_is_false(self):
        assert not matches(gt("lang", 5), METADATA)

    def test_none_filter_matches_everything(self):
        assert matches(None, None)
        assert matches(None, METADATA)

    def test_like_escapes_regex_characters(self):
        assert matches(like("path", "a.b%"), {"path": "a.b/c"})
        assert not matches(like("path", "a.b%"), {"path": "axb/c"})


class TestFilterVisitor:
    """Tests for visitor dispatch."""

    class EqualityOnly(FilterVisitor[str]):
        provider_name = "equality-only"

        def visit_eq(self, node):
            return f"{node.field}={node.value}"

    def test_dispatches_supported_nodes(self):
        assert self.EqualityOnly().visit(eq("lang", "en")) == "lang=en"

    @pytest.mark.parametrize("f", [
        gt("views", 1),
        like("title", "x%"),
        contains("tags", "ml"),
        and_(eq("lang", "en")),
        not_(eq("lang", "en")),
    ])
    def test_unsupported_nodes_fail(self, f):
        with pytest.raises(OperatorNotSupportedError, match="equality-only does not support"):
            self.EqualityOnly().visit(f)
