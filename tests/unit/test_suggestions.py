"""Unit tests for the suggestion engine and term relationship graph."""
import pytest
from xpp_mcp.core.models import Symbol, SymbolKind
from xpp_mcp.search.suggestions import (
    SuggestionWeights,
    TermRelationshipGraph,
    broader_suggestions,
    format_suggestions,
    generate_suggestions,
    narrower_suggestions,
    related_suggestions,
    typo_suggestions,
)


def _method(name, parent, used_types=(), calls=()):
    return Symbol(
        name=name,
        kind=SymbolKind.METHOD,
        parent=parent,
        source_location="x",
        model="ApplicationSuite",
        used_types=list(used_types),
        method_calls=list(calls),
    )


@pytest.fixture
def graph():
    symbols = [
        Symbol(name="CustHelper", kind=SymbolKind.CLASS, source_location="x", model="M"),
        _method("validateCustomer", "CustHelper", used_types=["CustTable", "CustAccount"]),
        _method("findByAccount", "CustHelper", used_types=["CustTable"]),
        _method("process", "CustService", used_types=["CustHelper"]),
    ]
    return TermRelationshipGraph().build(symbols)


class TestTermRelationshipGraph:
    def test_related_terms_strongest_first(self, graph):
        assert graph.related_terms("validateCustomer") == [("CustAccount", 1), ("CustHelper", 1), ("CustTable", 1)]

    def test_terms_keep_original_casing(self, graph):
        assert "CustTable" in graph.terms()
        assert len(graph) == len(set(t.lower() for t in graph.terms()))

    def test_popularity(self, graph):
        assert graph.popularity("validatecustomer") == 3
        assert graph.popularity("Unknown") == 0


class TestSuggestionSources:
    def test_typo_probable(self):
        suggestions = typo_suggestions("DimnesionAttribute", ["DimensionAttribute", "CustTable"])

        assert len(suggestions) == 1
        assert suggestions[0].type == "typo"
        assert suggestions[0].query == "DimensionAttribute"
        assert suggestions[0].reason == 'Did you mean "DimensionAttribute"?'
        assert suggestions[0].confidence == pytest.approx(1 - 2 / 18)

    def test_typo_similar_term_reason(self):
        weights = SuggestionWeights(typo_min_score=0.5)
        suggestions = typo_suggestions("CustTable", ["VendTable"], weights)

        assert suggestions[0].reason.startswith('Similar term: "VendTable"')

    def test_broader(self):
        suggestions = broader_suggestions("CustHelper")

        assert [(s.query, s.confidence) for s in suggestions] == [("Cust", 0.7), ("CustHelper*", 0.6)]
        assert suggestions[1].reason == 'Try wildcard search for "CustHelper" prefix'

    def test_narrower_common_suffix_confidence(self):
        suggestions = narrower_suggestions("Cust")
        by_query = {s.query: s for s in suggestions}

        assert by_query["CustHelper"].confidence == 0.65
        assert by_query["CustHelper"].reason == 'Try with common suffix "Helper"'
        assert by_query["CustTable"].confidence == 0.6

    def test_related_requires_graph(self):
        assert related_suggestions("Cust", None) == []

    def test_related_shares_root(self, graph):
        queries = [s.query for s in related_suggestions("CustHelper", graph, limit=10)]

        assert "CustService" in queries
        assert "CustHelper" not in queries
        assert "findByAccount" not in queries


class TestGenerateSuggestions:
    def test_sorted_by_confidence_and_truncated(self, graph):
        suggestions = generate_suggestions("DimnesionAttribute", ["DimensionAttribute"], graph)

        assert len(suggestions) == 5
        assert suggestions[0].type == "typo"
        confidences = [s.confidence for s in suggestions]
        assert confidences == sorted(confidences, reverse=True)

    def test_suffixed_query_only_gets_broader(self):
        suggestions = generate_suggestions("CustHelper", [], max_suggestions=10)

        assert [s.type for s in suggestions] == ["broader", "broader"]

    def test_blank_query(self):
        assert generate_suggestions("  ", ["CustTable"]) == []

    def test_max_suggestions_zero(self):
        assert generate_suggestions("Cust", ["CustTable"], max_suggestions=0) == []


class TestFormatSuggestions:
    def test_sections_in_fixed_order(self):
        suggestions = generate_suggestions("Cust", ["Cast"], max_suggestions=20)
        text = format_suggestions(suggestions)

        assert text.index("### Did you mean?") < text.index("### Try narrower search")
        assert '- **"CustHelper"** - Try with common suffix "Helper"' in text

    def test_empty(self):
        assert format_suggestions([]) == ""
