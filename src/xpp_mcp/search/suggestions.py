"""
Search suggestion engine.

When a search comes back empty, generate_suggestions proposes alternative
queries from four sources:

    - typo: existing names close to the query ("Did you mean ...?")
    - broader: the query without its role suffix, or as a prefix wildcard
    - narrower: the query with a common role suffix appended
    - related: names from the co-occurrence graph sharing the query's root

Every suggestion carries a confidence in [0, 1]; the constants live in
SuggestionWeights so they can be tuned without touching the algorithm.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from xpp_mcp.core.models import SearchSuggestion, Symbol
from xpp_mcp.search.fuzzy import (
    extract_root_term,
    find_fuzzy_matches,
    generate_broader_queries,
    generate_narrower_queries,
    is_probable_typo,
)

logger = logging.getLogger(__name__)

SUGGESTION_TYPES: Tuple[str, ...] = ("typo", "broader", "narrower", "related")

SECTION_TITLES: Dict[str, str] = {
    "typo": "Did you mean?",
    "broader": "Try broader search",
    "narrower": "Try narrower search",
    "related": "Related terms",
}


@dataclass(frozen=True)
class SuggestionWeights:
    """
    Thresholds and confidences used by the suggestion engine.

    Attributes:
        typo_min_score: Minimum similarity for a typo candidate
        typo_max_candidates: Maximum typo suggestions considered
        typo_high_score: Similarity at which a match is a probable typo
        typo_single_edit_score: Similarity needed with a single-character edit
        broader_suffix: Confidence of a suffix-stripped query
        broader_wildcard: Confidence of the trailing-wildcard query
        narrower_common: Confidence of narrower queries with a common suffix
        narrower_other: Confidence of the remaining narrower queries
        narrower_common_suffixes: Suffixes counted as common
        related: Confidence of related-term suggestions
        related_limit: Maximum related-term suggestions
    """
    typo_min_score: float = 0.7
    typo_max_candidates: int = 5
    typo_high_score: float = 0.85
    typo_single_edit_score: float = 0.75
    broader_suffix: float = 0.7
    broader_wildcard: float = 0.6
    narrower_common: float = 0.65
    narrower_other: float = 0.6
    narrower_common_suffixes: Tuple[str, ...] = ("Helper", "Service", "Manager")
    related: float = 0.6
    related_limit: int = 3


DEFAULT_WEIGHTS = SuggestionWeights()


class TermRelationshipGraph:
    """
    Weighted co-occurrence graph over lower-cased symbol names.

    For every symbol, an edge (name -> term) is incremented for each name the
    symbol references through used types, method calls, related methods,
    its parent and its base class. The graph is read-only once built; a
    re-index builds a new one.
    """

    def __init__(self):
        self._edges: Dict[str, Dict[str, int]] = {}
        self._display: Dict[str, str] = {}

    def build(self, symbols: Iterable[Symbol]) -> "TermRelationshipGraph":
        edges: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for symbol in symbols:
            base = symbol.name.lower()
            self._display.setdefault(base, symbol.name)
            for term in self._referenced_terms(symbol):
                key = term.lower()
                self._display.setdefault(key, term)
                if key != base:
                    edges[base][key] += 1
        self._edges = {term: dict(related) for term, related in edges.items()}
        logger.info(f"Built term relationship graph: {len(self._display)} terms, {len(self._edges)} with relations")
        return self

    @staticmethod
    def _referenced_terms(symbol: Symbol) -> List[str]:
        terms = list(symbol.used_types) + list(symbol.method_calls) + list(symbol.related_methods)
        if symbol.parent:
            terms.append(symbol.parent)
        if symbol.extends:
            terms.append(symbol.extends)
        # Each referenced term counts once per symbol
        return list(dict.fromkeys(t.strip() for t in terms if t and t.strip()))

    def related_terms(self, term: str, limit: int = 5) -> List[Tuple[str, int]]:
        """Top co-occurring terms of ``term`` as (term, count), strongest first."""
        related = self._edges.get(term.lower(), {})
        ranked = sorted(related.items(), key=lambda item: (-item[1], item[0]))
        return [(self._display.get(t, t), count) for t, count in ranked[:limit]]

    def popularity(self, term: str) -> int:
        """Sum of all co-occurrence counters of ``term``."""
        return sum(self._edges.get(term.lower(), {}).values())

    def terms(self) -> List[str]:
        """Every known term, in its original casing."""
        return list(self._display.values())

    def __len__(self) -> int:
        return len(self._display)


def typo_suggestions(query: str, all_names: Sequence[str],
                     weights: SuggestionWeights = DEFAULT_WEIGHTS) -> List[SearchSuggestion]:
    suggestions = []
    for match in find_fuzzy_matches(query, all_names, weights.typo_min_score, weights.typo_max_candidates):
        if is_probable_typo(query, match.term, match.score,
                            weights.typo_high_score, weights.typo_single_edit_score):
            reason = f'Did you mean "{match.term}"?'
        else:
            reason = f'Similar term: "{match.term}" ({round(match.score * 100)}% match)'
        suggestions.append(SearchSuggestion("typo", match.term, reason, match.score))
    return suggestions


def broader_suggestions(query: str, weights: SuggestionWeights = DEFAULT_WEIGHTS) -> List[SearchSuggestion]:
    suggestions = []
    for variant in generate_broader_queries(query):
        if variant.endswith("*"):
            suggestions.append(SearchSuggestion(
                "broader", variant, f'Try wildcard search for "{variant[:-1]}" prefix', weights.broader_wildcard))
        else:
            suggestions.append(SearchSuggestion(
                "broader", variant, "Try broader search without suffix", weights.broader_suffix))
    return suggestions


def narrower_suggestions(query: str, weights: SuggestionWeights = DEFAULT_WEIGHTS) -> List[SearchSuggestion]:
    suggestions = []
    for variant in generate_narrower_queries(query):
        suffix = variant[len(query):]
        common = suffix in weights.narrower_common_suffixes
        suggestions.append(SearchSuggestion(
            "narrower",
            variant,
            f'Try with {"common " if common else ""}suffix "{suffix}"',
            weights.narrower_common if common else weights.narrower_other,
        ))
    return suggestions


def related_suggestions(query: str, graph: Optional[TermRelationshipGraph], limit: int = 3,
                        weights: SuggestionWeights = DEFAULT_WEIGHTS) -> List[SearchSuggestion]:
    """
    Graph terms whose root contains, or is contained in, the query's root.

    Ordered by popularity (most connected first), then term.
    """
    if graph is None or not query:
        return []
    root = extract_root_term(query).lower()
    query_lower = query.lower()
    candidates = []
    for term in graph.terms():
        term_lower = term.lower()
        if term_lower == query_lower:
            continue
        term_root = extract_root_term(term).lower()
        if len(term_root) < 2:
            continue
        if term_root in root or root in term_root:
            candidates.append((term, graph.popularity(term)))
    candidates.sort(key=lambda item: (-item[1], item[0]))
    return [
        SearchSuggestion("related", term, "Related term with similar root", weights.related)
        for term, _ in candidates[:limit]
    ]


def generate_suggestions(
    query: str,
    all_names: Sequence[str],
    graph: Optional[TermRelationshipGraph] = None,
    max_suggestions: int = 5,
    weights: SuggestionWeights = DEFAULT_WEIGHTS,
) -> List[SearchSuggestion]:
    """
    Merge typo, broader, narrower and related suggestions for ``query``.

    The result is sorted by confidence (non-increasing; ties keep the order
    typo, broader, narrower, related) and truncated to ``max_suggestions``.
    """
    query = (query or "").strip()
    if not query:
        return []
    suggestions = (
        typo_suggestions(query, all_names, weights)
        + broader_suggestions(query, weights)
        + narrower_suggestions(query, weights)
        + related_suggestions(query, graph, weights.related_limit, weights)
    )
    suggestions.sort(key=lambda s: -s.confidence)
    return suggestions[:max(0, max_suggestions)]


def format_suggestions(suggestions: Sequence[SearchSuggestion]) -> str:
    """Render suggestions as markdown, one section per suggestion type."""
    if not suggestions:
        return ""
    lines: List[str] = []
    for kind in SUGGESTION_TYPES:
        group = [s for s in suggestions if s.type == kind]
        if not group:
            continue
        lines.append(f"\n### {SECTION_TITLES[kind]}")
        lines.extend(f'- **"{s.query}"** - {s.reason}' for s in group)
    return "\n".join(lines)
