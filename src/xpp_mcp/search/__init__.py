"""
Search for XPP MCP.

Exact, prefix, ranked and hybrid symbol search, plus the fuzzy matching and
suggestion engine used when a search comes back empty.
"""

from .engine import SearchEngine, build_fts_query, name_relevance, parse_kinds
from .fuzzy import levenshtein_distance, similarity, find_fuzzy_matches, is_probable_typo
from .suggestions import (
    SuggestionWeights,
    TermRelationshipGraph,
    generate_suggestions,
    format_suggestions,
)

__all__ = [
    "SearchEngine",
    "build_fts_query",
    "name_relevance",
    "parse_kinds",
    "levenshtein_distance",
    "similarity",
    "find_fuzzy_matches",
    "is_probable_typo",
    "SuggestionWeights",
    "TermRelationshipGraph",
    "generate_suggestions",
    "format_suggestions",
]
