"""
Search engine over the symbol store.

Four query modes are offered:

    - exact: every symbol with a given name (optionally of one kind)
    - prefix: case-insensitive name prefix, alphabetical
    - ranked: FTS5 full-text match over names, signatures, descriptions,
      tags, snippets and comments, ordered by bm25 rank
    - hybrid: ranked + prefix store hits merged with externally supplied
      (workspace) symbols and scored by name relevance

All modes are deterministic: identical store contents and arguments give
identical result order.
"""

import logging
import re
import sqlite3
from typing import List, Optional, Sequence, Tuple

from xpp_mcp.core.exceptions import SearchError
from xpp_mcp.core.models import SearchHit, Symbol, SymbolKind
from xpp_mcp.indexing.symbol_store import KindFilter, SymbolStore, escape_like, kind_clause
from xpp_mcp.search.fuzzy import levenshtein_distance

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20

# Name relevance scores used by hybrid search
RELEVANCE_EXACT = 100.0
RELEVANCE_PREFIX = 80.0
RELEVANCE_SUBSTRING = 50.0
RELEVANCE_CLOSE = 30.0
RELEVANCE_OTHER = 10.0
CLOSE_DISTANCE = 3

SOURCE_STORE = "external"
SOURCE_WORKSPACE = "workspace"


def clamp_limit(limit: Optional[int], default: int = DEFAULT_LIMIT) -> int:
    """Non-positive or missing limits fall back to ``default``."""
    if limit is None or limit <= 0:
        return default
    return limit


def build_fts_query(query: str) -> str:
    """
    Turn free text into an FTS5 MATCH expression.

    Every whitespace-separated word is quoted (embedded quotes doubled) so
    FTS5 operators in user input are matched literally. A trailing ``*`` is
    kept outside the quotes as a prefix query. Words are implicitly AND-ed.
    """
    terms = []
    for word in query.split():
        prefix = word.endswith("*")
        word = word.rstrip("*")
        if not word:
            continue
        quoted = '"' + word.replace('"', '""') + '"'
        terms.append(quoted + "*" if prefix else quoted)
    return " ".join(terms)


def name_relevance(query: str, name: str) -> float:
    """
    Score how well ``name`` answers ``query``.

    exact 100, prefix 80, substring 50, edit distance <= 3 30, otherwise 10.
    """
    q = query.lower().rstrip("*")
    n = name.lower()
    if n == q:
        return RELEVANCE_EXACT
    if n.startswith(q):
        return RELEVANCE_PREFIX
    if q in n:
        return RELEVANCE_SUBSTRING
    if levenshtein_distance(q, n) <= CLOSE_DISTANCE:
        return RELEVANCE_CLOSE
    return RELEVANCE_OTHER


def _identity(symbol: Symbol) -> Tuple[str, str, Optional[str], str, str]:
    return (symbol.name, symbol.kind.value, symbol.parent, symbol.model, symbol.source_location)


class SearchEngine:
    """
    Read-only query layer over a SymbolStore.

    Thread Safety:
        Safe to share; every query runs on the calling thread's store
        connection.
    """

    def __init__(self, store: SymbolStore, default_limit: int = DEFAULT_LIMIT):
        self.store = store
        self.default_limit = default_limit

    def search_exact(self, name: str, kind: Optional[SymbolKind] = None) -> List[Symbol]:
        """All symbols named exactly ``name``, in insertion order."""
        if not name or not name.strip():
            return []
        sql = "SELECT * FROM symbols WHERE name = ?"
        params: List[object] = [name.strip()]
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        return self.store.fetch_symbols(sql + " ORDER BY id", params)

    def search_prefix(self, prefix: str, kinds: KindFilter = None,
                      limit: Optional[int] = None) -> List[Symbol]:
        """Symbols whose name starts with ``prefix`` (case-insensitive), alphabetical."""
        prefix = (prefix or "").strip().rstrip("*")
        if not prefix:
            return []
        clause, params = kind_clause(kinds)
        return self.store.fetch_symbols(
            f"SELECT * FROM symbols WHERE name LIKE ? ESCAPE '\\'{clause} "
            f"ORDER BY name COLLATE NOCASE, id LIMIT ?",
            [f"{escape_like(prefix)}%", *params, clamp_limit(limit, self.default_limit)],
        )

    def search_ranked(self, query: str, kinds: KindFilter = None,
                      limit: Optional[int] = None) -> List[Symbol]:
        """
        Full-text search ordered by bm25 rank, then name, then insertion order.

        Raises:
            SearchError: If SQLite rejects the match expression
        """
        match = build_fts_query(query or "")
        if not match:
            return []
        clause, params = kind_clause(kinds, column="s.kind")
        sql = (
            "SELECT s.* FROM symbols_fts JOIN symbols s ON s.id = symbols_fts.rowid "
            f"WHERE symbols_fts MATCH ?{clause} "
            "ORDER BY symbols_fts.rank, s.name, s.id LIMIT ?"
        )
        try:
            return self.store.fetch_symbols(sql, [match, *params, clamp_limit(limit, self.default_limit)])
        except sqlite3.OperationalError as e:
            raise SearchError(f"Full-text search failed for {query!r}: {e}") from e

    def search(
        self,
        query: str,
        kinds: KindFilter = None,
        limit: Optional[int] = None,
        extra_symbols: Optional[Sequence[Symbol]] = None,
    ) -> List[SearchHit]:
        """
        Hybrid search: store hits plus workspace symbols, scored by relevance.

        Store hits come from the ranked full-text search, topped up with
        prefix matches. Workspace symbols are matched by name substring or a
        close edit distance. Results are ordered by relevance (stable), and
        de-duplicated by qualified name with the workspace copy winning.

        Args:
            query: Search text; a trailing ``*`` requests a prefix match
            kinds: Restrict results to these symbol kinds
            limit: Maximum number of hits (non-positive means the default)
            extra_symbols: Transient symbols, e.g. from scan_workspace

        Returns:
            List of SearchHit, best first
        """
        query = (query or "").strip()
        if not query:
            return []
        limit = clamp_limit(limit, self.default_limit)
        kind_set = set(kinds) if kinds else None

        store_symbols: List[Symbol] = []
        seen = set()
        for symbol in self.search_ranked(query, kinds, limit) + self.search_prefix(query, kinds, limit):
            key = _identity(symbol)
            if key not in seen:
                seen.add(key)
                store_symbols.append(symbol)

        candidates: List[Tuple[float, int, int, SearchHit]] = []
        for order, symbol in enumerate(store_symbols):
            relevance = name_relevance(query, symbol.name)
            candidates.append((relevance, 1, order, SearchHit(symbol, SOURCE_STORE, relevance)))

        needle = query.lower().rstrip("*")
        for order, symbol in enumerate(extra_symbols or []):
            if kind_set and symbol.kind not in kind_set:
                continue
            relevance = name_relevance(query, symbol.name)
            if needle not in symbol.name.lower() and relevance < RELEVANCE_CLOSE:
                continue
            candidates.append((relevance, 0, order, SearchHit(symbol, SOURCE_WORKSPACE, relevance)))

        # Highest relevance first; on ties workspace before store, then original order
        candidates.sort(key=lambda c: (-c[0], c[1], c[2]))

        hits: List[SearchHit] = []
        emitted = set()
        for _, _, _, hit in candidates:
            key = (hit.symbol.qualified_name, hit.symbol.kind.value)
            if key in emitted:
                continue
            emitted.add(key)
            hits.append(hit)
            if len(hits) >= limit:
                break

        logger.debug(f"Hybrid search {query!r}: {len(store_symbols)} store hits, {len(hits)} returned")
        return hits


def parse_kinds(values: Optional[Sequence[str]]) -> Optional[List[SymbolKind]]:
    """
    Convert kind names (or "all") into SymbolKind values.

    Raises:
        ValueError: If a name is not a SymbolKind
    """
    if not values:
        return None
    kinds = []
    for value in values:
        for part in re.split(r"[,\s]+", value.strip()):
            if not part or part.lower() == "all":
                continue
            kinds.append(SymbolKind.from_string(part))
    return sorted(set(kinds), key=lambda k: k.value) or None
