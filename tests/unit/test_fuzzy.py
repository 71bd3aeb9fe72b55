"""Unit tests for fuzzy matching helpers."""
import pytest
from xpp_mcp.search.fuzzy import (
    extract_root_term,
    find_fuzzy_matches,
    generate_broader_queries,
    generate_narrower_queries,
    has_single_edit,
    has_single_transposition,
    is_probable_typo,
    levenshtein_distance,
    similarity,
)


class TestDistance:
    def test_case_insensitive(self):
        assert levenshtein_distance("CustTable", "custtable") == 0

    def test_transposition_costs_two(self):
        assert levenshtein_distance("Dimension", "Dimnesion") == 2

    def test_similarity_bounds(self):
        assert similarity("", "") == 1.0
        assert similarity("abc", "") == 0.0
        assert similarity("CustHelper", "CustHelpr") == pytest.approx(0.9)


class TestFuzzyMatches:
    def test_finds_close_names_best_first(self):
        matches = find_fuzzy_matches("CustTabel", ["CustTable", "VendTable", "CustTrans"], min_score=0.6)

        assert matches[0].term == "CustTable"
        assert matches[0].distance == 2
        assert [m.score for m in matches] == sorted((m.score for m in matches), reverse=True)

    def test_excludes_exact_query(self):
        matches = find_fuzzy_matches("CustTable", ["custtable", "CustTables"])

        assert [m.term for m in matches] == ["CustTables"]

    def test_respects_max_results(self):
        names = [f"Cust{i}" for i in range(10)]
        assert len(find_fuzzy_matches("Cust", names, min_score=0.5, max_results=3)) == 3

    def test_empty_inputs(self):
        assert find_fuzzy_matches("", ["CustTable"]) == []
        assert find_fuzzy_matches("CustTable", []) == []


class TestTypoDetection:
    def test_single_edit(self):
        assert has_single_edit("CustHelper", "CustHelpr")
        assert not has_single_edit("CustHelper", "CustHelper")

    def test_single_transposition(self):
        assert has_single_transposition("CustTabel", "CustTable")
        assert not has_single_transposition("CustTable", "CustTbael")

    def test_probable_typo_by_transposition_despite_low_score(self):
        assert is_probable_typo("ab", "ba", score=0.0)

    def test_not_a_typo(self):
        assert not is_probable_typo("CustTable", "VendTable", score=0.7)


class TestQueryVariants:
    def test_broader_strips_suffix_and_adds_wildcard(self):
        assert generate_broader_queries("CustHelper") == ["Cust", "CustHelper*"]

    def test_broader_short_query_has_no_wildcard(self):
        assert generate_broader_queries("ab") == []

    def test_narrower_appends_suffixes(self):
        variants = generate_narrower_queries("Cust")

        assert variants[:3] == ["CustHelper", "CustService", "CustManager"]
        assert len(variants) == 10

    def test_narrower_skips_suffixed_query(self):
        assert generate_narrower_queries("CustTable") == []

    @pytest.mark.parametrize("term,root", [
        ("CustHelper", "Cust"),
        ("SalesTableForm", "SalesTable"),
        ("custservice", "cust"),
        ("Helper", "Helper"),
    ])
    def test_extract_root_term(self, term, root):
        assert extract_root_term(term) == root
