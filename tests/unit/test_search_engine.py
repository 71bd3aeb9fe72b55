"""Unit tests for the search engine."""
import pytest
from xpp_mcp.core.models import Symbol, SymbolKind
from xpp_mcp.search.engine import (
    SearchEngine,
    build_fts_query,
    clamp_limit,
    name_relevance,
    parse_kinds,
)


@pytest.fixture
def engine(indexed_store):
    return SearchEngine(indexed_store)


class TestHelpers:
    def test_clamp_limit(self):
        assert clamp_limit(None) == 20
        assert clamp_limit(0) == 20
        assert clamp_limit(-3, default=5) == 5
        assert clamp_limit(7) == 7

    def test_build_fts_query_quotes_words(self):
        assert build_fts_query("cust helper") == '"cust" "helper"'
        assert build_fts_query("Cust*") == '"Cust"*'
        assert build_fts_query('say "hi" OR x') == '"say" """hi""" "OR" "x"'
        assert build_fts_query("  * ") == ""

    @pytest.mark.parametrize("query,name,expected", [
        ("CustTable", "custtable", 100.0),
        ("Cust", "CustTable", 80.0),
        ("Table", "CustTable", 50.0),
        ("CustTabel", "CustTable", 30.0),
        ("Vendor", "CustTable", 10.0),
        ("Cust*", "CustHelper", 80.0),
    ])
    def test_name_relevance(self, query, name, expected):
        assert name_relevance(query, name) == expected

    def test_parse_kinds(self):
        assert parse_kinds(None) is None
        assert parse_kinds(["all"]) is None
        assert parse_kinds(["table, class"]) == [SymbolKind.CLASS, SymbolKind.TABLE]
        with pytest.raises(ValueError):
            parse_kinds(["form"])


class TestExactAndPrefix:
    def test_exact(self, engine):
        hits = engine.search_exact("findByAccount")
        assert [s.parent for s in hits] == ["CustHelper", "SalesOrderHelper", "VendHelper"]

    def test_exact_with_kind(self, engine):
        assert engine.search_exact("CustTable", SymbolKind.CLASS) == []
        assert engine.search_exact("  ") == []

    def test_prefix_case_insensitive_alphabetical(self, engine):
        names = [s.name for s in engine.search_prefix("cust", [SymbolKind.CLASS, SymbolKind.TABLE])]
        assert names == ["CustHelper", "CustService", "CustTable"]

    def test_prefix_limit(self, engine):
        assert len(engine.search_prefix("C", limit=2)) == 2


class TestRanked:
    def test_matches_source_snippets(self, engine):
        results = engine.search_ranked("DimensionAttributeValueSetStorage")
        assert {(s.parent, s.name) for s in results} == {
            ("CustHelper", "updateDimensions"),
            ("VendHelper", "updateDimensions"),
        }

    def test_operators_are_literal(self, engine):
        assert engine.search_ranked("CustHelper OR NOT") == []

    def test_matches_inline_comments(self, engine):
        names = [s.name for s in engine.search_ranked("capped")]
        assert names == ["applyDiscount"]

    def test_deterministic(self, engine):
        first = [s.qualified_name for s in engine.search_ranked("CustHelper")]
        second = [s.qualified_name for s in engine.search_ranked("CustHelper")]
        assert first == second


class TestHybrid:
    def test_exact_name_ranks_first(self, engine):
        hits = engine.search("CustHelper")

        assert hits[0].symbol.name == "CustHelper"
        assert hits[0].relevance == 100.0
        assert hits[0].source == "external"
        relevances = [h.relevance for h in hits]
        assert relevances == sorted(relevances, reverse=True)

    def test_kind_filter(self, engine):
        hits = engine.search("CustTable", [SymbolKind.TABLE])
        assert [h.symbol.name for h in hits] == ["CustTable"]

    def test_limit(self, engine):
        assert len(engine.search("Cust*", limit=2)) == 2

    def test_blank_query(self, engine):
        assert engine.search("   ") == []

    def test_workspace_copy_wins(self, engine):
        local = Symbol(name="CustHelper", kind=SymbolKind.CLASS, source_location="ws/CustHelper.json",
                       model="Workspace", description="Local edit")

        hits = engine.search("CustHelper", extra_symbols=[local])

        assert hits[0].source == "workspace"
        assert hits[0].symbol.description == "Local edit"
        assert sum(1 for h in hits if h.symbol.qualified_name == "CustHelper") == 1

    def test_unrelated_workspace_symbols_are_dropped(self, engine):
        other = Symbol(name="InventSum", kind=SymbolKind.TABLE, source_location="ws/InventSum.json",
                       model="Workspace")

        hits = engine.search("CustHelper", extra_symbols=[other])

        assert all(h.symbol.name != "InventSum" for h in hits)
