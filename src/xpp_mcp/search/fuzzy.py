"""
Fuzzy string matching for typo detection and query variants.

Distances are classic Levenshtein distances computed case-insensitively with
rapidfuzz. ``similarity(a, b) = 1 - distance / max(len(a), len(b))``.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

# Role suffixes stripped by broader-query generation, checked in order
BROADER_SUFFIXES: Tuple[str, ...] = (
    "Helper", "Service", "Manager", "Controller", "Handler",
    "Builder", "Factory", "Provider", "Processor", "Engine",
    "Validator", "Converter", "Formatter", "Parser", "Writer",
    "Reader", "Client", "Server", "Contract", "Table", "Form", "Query", "DP",
)

# Canonical suffixes appended by narrower-query generation
NARROWER_SUFFIXES: Tuple[str, ...] = (
    "Helper", "Service", "Manager", "Controller", "Table",
    "Contract", "Builder", "DP", "Form", "Query",
)

# Suffixes removed when computing a term's root
ROOT_SUFFIXES: Tuple[str, ...] = (
    "Helper", "Service", "Manager", "Controller", "Handler",
    "Builder", "Factory", "Provider", "Processor", "Engine",
    "Table", "Contract", "DP", "Form", "Query",
)

WILDCARD_MIN_LENGTH = 3


@dataclass(frozen=True)
class FuzzyMatch:
    """A candidate close to a query: similarity score and edit distance."""
    term: str
    score: float
    distance: int


def levenshtein_distance(a: str, b: str) -> int:
    """Case-insensitive Levenshtein distance."""
    return Levenshtein.distance(a.lower(), b.lower())


def similarity(a: str, b: str) -> float:
    """
    Similarity in [0, 1] derived from the edit distance.

    Two empty strings are identical (1.0).
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    score = 1.0 - levenshtein_distance(a, b) / max_len
    return min(1.0, max(0.0, score))


def find_fuzzy_matches(
    query: str,
    candidates: Iterable[str],
    min_score: float = 0.7,
    max_results: int = 5,
) -> List[FuzzyMatch]:
    """
    Candidates with similarity >= ``min_score`` to ``query``.

    Case-insensitive equals of the query are excluded. Results are sorted by
    score (best first), then distance, then name.
    """
    unique = list(dict.fromkeys(c for c in candidates if c))
    if not query or not unique:
        return []

    query_lower = query.lower()
    scored = process.extract(
        query,
        unique,
        scorer=Levenshtein.normalized_similarity,
        processor=str.lower,
        score_cutoff=min_score,
        limit=None,
    )
    matches = [
        FuzzyMatch(term=term, score=score, distance=levenshtein_distance(query, term))
        for term, score, _ in scored
        if term.lower() != query_lower
    ]
    matches.sort(key=lambda m: (-m.score, m.distance, m.term))
    return matches[:max_results]


def has_single_edit(a: str, b: str) -> bool:
    """True if the strings differ by exactly one substitution, insertion or deletion."""
    return levenshtein_distance(a, b) == 1


def has_single_transposition(a: str, b: str) -> bool:
    """True if the strings are equal except for one swapped adjacent pair."""
    if len(a) != len(b):
        return False
    s1, s2 = a.lower(), b.lower()
    diffs = [i for i in range(len(s1)) if s1[i] != s2[i]]
    if len(diffs) != 2 or diffs[1] != diffs[0] + 1:
        return False
    i = diffs[0]
    return s1[i] == s2[i + 1] and s1[i + 1] == s2[i]


def is_probable_typo(query: str, candidate: str, score: float,
                     high_score: float = 0.85, single_edit_score: float = 0.75) -> bool:
    """
    Decide whether ``candidate`` is what the user meant to type.

    A probable typo has a high similarity, or a fairly high similarity with
    a single character edit, or exactly one adjacent transposition.
    """
    if score >= high_score:
        return True
    if score >= single_edit_score and has_single_edit(query, candidate):
        return True
    return has_single_transposition(query, candidate)


def generate_broader_queries(query: str) -> List[str]:
    """Suffix-stripped variants of ``query`` plus a trailing-wildcard variant."""
    variants = [
        query[:-len(suffix)]
        for suffix in BROADER_SUFFIXES
        if query.endswith(suffix) and len(query) > len(suffix)
    ]
    if len(query) >= WILDCARD_MIN_LENGTH:
        variants.append(f"{query}*")
    return list(dict.fromkeys(variants))


def generate_narrower_queries(query: str) -> List[str]:
    """``query`` with each canonical suffix appended, unless it already ends in one."""
    if not query or any(query.endswith(suffix) for suffix in NARROWER_SUFFIXES):
        return []
    return [f"{query}{suffix}" for suffix in NARROWER_SUFFIXES]


def extract_root_term(term: str) -> str:
    """Strip one role suffix (case-insensitive) from ``term``."""
    lowered = term.lower()
    for suffix in ROOT_SUFFIXES:
        if lowered.endswith(suffix.lower()) and len(term) > len(suffix):
            return term[:-len(suffix)]
    return term
