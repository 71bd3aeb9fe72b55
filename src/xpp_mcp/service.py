"""
Index service: every operation the MCP layer dispatches to.

IndexService composes the symbol store, search engine, suggestion engine,
pattern analyzer and result cache. Each read operation asks the cache first
(exact key, then a fuzzy key for searches), computes on a miss and stores
the result in the tier that matches its volatility:

    - SHORT: search, search_extensions
    - MEDIUM: analyze_patterns, suggest_missing_methods,
      find_similar_methods, get_api_usage_patterns
    - LONG: get_class_info, get_table_info, get_completions

Usage:
    from xpp_mcp.config import IndexConfig
    from xpp_mcp.service import IndexService

    service = IndexService.from_config(IndexConfig.from_env())
    service.reindex("/path/to/metadata", models=["ContosoCore"])
    response = service.search("CustHelper")
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from xpp_mcp.analysis.patterns import PatternAnalyzer
from xpp_mcp.cache.symbol_cache import CacheTier, SymbolCache, make_key
from xpp_mcp.config import IndexConfig
from xpp_mcp.core.exceptions import InvalidArgumentError
from xpp_mcp.core.interfaces import IParser
from xpp_mcp.core.models import (
    ApiUsageReport,
    BatchSearchItem,
    IndexStats,
    MissingMethodsReport,
    PatternAnalysis,
    SearchRequest,
    SearchResponse,
    SearchSuggestion,
    SimilarMethod,
    Symbol,
    SymbolDetails,
    SymbolKind,
)
from xpp_mcp.indexing.parallel_indexer import ProgressCallback
from xpp_mcp.indexing.symbol_store import SymbolStore, escape_like
from xpp_mcp.indexing.workspace import scan_workspace
from xpp_mcp.parsers.metadata_parser import MetadataParser
from xpp_mcp.search.engine import SearchEngine, clamp_limit
from xpp_mcp.search.fuzzy import extract_root_term
from xpp_mcp.search.suggestions import TermRelationshipGraph, generate_suggestions

logger = logging.getLogger(__name__)

MAX_BATCH_QUERIES = 10
SUGGESTION_NAME_POOL = 50000
DEFAULT_ANALYSIS_LIMIT = 20
DEFAULT_MISSING_LIMIT = 10
DEFAULT_SIMILAR_LIMIT = 10
DEFAULT_API_LIMIT = 50


def _require(value: Optional[str], name: str) -> str:
    """Stripped ``value``, or InvalidArgumentError when it is missing or blank."""
    if value is None or not str(value).strip():
        raise InvalidArgumentError(f"'{name}' is required and cannot be empty")
    return str(value).strip()


def _kinds_tuple(kinds: Optional[Sequence[SymbolKind]]) -> Optional[Tuple[SymbolKind, ...]]:
    if not kinds:
        return None
    return tuple(sorted(set(kinds), key=lambda k: k.value))


def _symbols_to_json(symbols: List[Symbol]) -> List[Dict[str, Any]]:
    return [s.to_dict() for s in symbols]


def _symbols_from_json(data: List[Dict[str, Any]]) -> List[Symbol]:
    return [Symbol.from_dict(d) for d in data]


class IndexService:
    """
    Operation boundary over the store, search, analysis and cache.

    Attributes:
        config: Runtime configuration
        store: Persistent symbol store
        cache: Result cache (a no-op cache when Redis is unavailable)
        engine: Search engine over the store
        analyzer: Pattern analyzer over the store

    Thread Safety:
        This class IS thread-safe. Reads run on per-thread store
        connections, the term graph is built once under a lock and replaced
        atomically by reindex().
    """

    def __init__(
        self,
        config: IndexConfig,
        store: SymbolStore,
        cache: Optional[SymbolCache] = None,
        parser: Optional[IParser] = None,
    ):
        self.config = config
        self.store = store
        self.cache = cache or SymbolCache(None)
        self.parser = parser or MetadataParser()
        self.engine = SearchEngine(store, default_limit=config.default_limit)
        self.analyzer = PatternAnalyzer(store)
        self._graph: Optional[TermRelationshipGraph] = None
        self._graph_lock = threading.Lock()
        # Workers are reused across batch searches; each holds one store connection
        self._executor = ThreadPoolExecutor(max_workers=MAX_BATCH_QUERIES, thread_name_prefix="xpp-batch")

    @classmethod
    def from_config(cls, config: IndexConfig) -> "IndexService":
        """Open the store at ``config.db_path`` and connect the cache."""
        store = SymbolStore.open(config.db_path)
        if store.recovered:
            logger.warning(f"Symbol store at {config.db_path} was corrupt and has been recreated empty")
        return cls(config, store, SymbolCache.from_config(config))

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.store.close()

    @property
    def graph(self) -> TermRelationshipGraph:
        """Term co-occurrence graph, built from the store on first use."""
        with self._graph_lock:
            if self._graph is None:
                self._graph = TermRelationshipGraph().build(self.store.iter_symbols())
            return self._graph

    # =========================================================================
    # Search
    # =========================================================================

    def suggest(self, query: str, kinds: Optional[Sequence[SymbolKind]] = None) -> List[SearchSuggestion]:
        """Alternative queries for ``query`` (typo, broader, narrower, related)."""
        names = self.store.all_names(limit=SUGGESTION_NAME_POOL, kinds=kinds)
        return generate_suggestions(query, names, self.graph)

    def search(
        self,
        query: str,
        kinds: Optional[Sequence[SymbolKind]] = None,
        limit: Optional[int] = None,
        workspace_path: Optional[str] = None,
    ) -> SearchResponse:
        """
        Hybrid search, with suggestions when nothing matched.

        Store-only searches go through the cache (SHORT tier, fuzzy lookup).
        Searches that include a workspace are never cached since their
        results depend on local files.

        Raises:
            InvalidArgumentError: If ``query`` is blank
            SearchError: If the full-text query fails
        """
        query = _require(query, "query")
        kinds = _kinds_tuple(kinds)
        limit = clamp_limit(limit, self.config.default_limit)

        def compute(extra: Optional[List[Symbol]] = None) -> SearchResponse:
            hits = self.engine.search(query, kinds, limit, extra_symbols=extra)
            suggestions = [] if hits else self.suggest(query, kinds)
            return SearchResponse(query=query, hits=hits, suggestions=suggestions)

        if workspace_path:
            return compute(scan_workspace(workspace_path, self.parser))

        response, from_cache = self.cache.with_cache(
            make_key("search", query, kinds, limit),
            CacheTier.SHORT,
            compute,
            fuzzy=True,
            encode=lambda r: r.to_dict(),
            decode=SearchResponse.from_dict,
        )
        response.query = query
        response.from_cache = from_cache
        return response

    def batch_search(self, requests: Sequence[SearchRequest]) -> List[BatchSearchItem]:
        """
        Run up to 10 searches concurrently.

        Results are returned in request order once every search completed.
        A failing search is reported in its own item and does not affect
        the others.

        Raises:
            InvalidArgumentError: If no request or more than 10 are given
        """
        if not requests:
            raise InvalidArgumentError("batch_search needs at least one query")
        if len(requests) > MAX_BATCH_QUERIES:
            raise InvalidArgumentError(
                f"batch_search accepts at most {MAX_BATCH_QUERIES} queries, got {len(requests)}"
            )

        results: List[Optional[BatchSearchItem]] = [None] * len(requests)
        futures = {
            self._executor.submit(self.search, r.query, r.kinds, r.limit, r.workspace_path): i
            for i, r in enumerate(requests)
        }
        for future in as_completed(futures):
            index = futures[future]
            query = requests[index].query
            try:
                results[index] = BatchSearchItem(query=query, success=True, response=future.result())
            except Exception as e:
                logger.warning(f"Batch search for {query!r} failed: {e}")
                results[index] = BatchSearchItem(query=query, success=False, error=str(e))
        return results

    def search_extensions(self, query: str, prefix: Optional[str] = None,
                          limit: Optional[int] = None) -> List[Symbol]:
        """
        Symbols of custom models whose name contains ``query``.

        With ``prefix``, models starting with it are searched; otherwise the
        models classified as custom by the configuration.
        """
        query = _require(query, "query")
        limit = clamp_limit(limit, self.config.default_limit)

        def compute() -> List[Symbol]:
            if prefix:
                return self.store.search_in_models(query, prefix, limit)
            models = self.custom_models()
            if not models:
                return []
            placeholders = ",".join("?" for _ in models)
            return self.store.fetch_symbols(
                f"SELECT * FROM symbols WHERE name LIKE ? ESCAPE '\\' AND model IN ({placeholders}) "
                f"ORDER BY name COLLATE NOCASE, id LIMIT ?",
                [f"%{escape_like(query)}%", *models, limit],
            )

        symbols, _ = self.cache.with_cache(
            make_key("ext", query, limit=limit, normalize=False, scope=prefix or "custom"),
            CacheTier.SHORT,
            compute,
            encode=_symbols_to_json,
            decode=_symbols_from_json,
        )
        return symbols

    # =========================================================================
    # Structure
    # =========================================================================

    def get_symbol(self, name: str, kind: Optional[SymbolKind] = None) -> Optional[Symbol]:
        return self.store.get_by_name(_require(name, "name"), kind)

    def similar_names(self, name: str, kinds: Optional[Sequence[SymbolKind]] = None,
                      limit: int = 5) -> List[str]:
        """Distinct stored names containing the root of ``name``, for not-found hints."""
        name = _require(name, "name")
        root = extract_root_term(name)
        if len(root) < 3:
            root = name
        names: List[str] = []
        for symbol in self.store.find_by_name_fragment(root, kinds, limit * 2):
            if symbol.name != name and symbol.name not in names:
                names.append(symbol.name)
        return names[:limit]

    def _details(self, operation: str, name: str, kind: SymbolKind,
                 member_kinds: Tuple[SymbolKind, ...]) -> Optional[SymbolDetails]:
        def compute() -> Optional[SymbolDetails]:
            symbol = self.store.get_by_name(name, kind)
            if symbol is None:
                return None
            members: List[Symbol] = []
            for member_kind in member_kinds:
                members.extend(self.store.get_children(name, member_kind))
            return SymbolDetails(symbol=symbol, members=members)

        details, _ = self.cache.with_cache(
            make_key(operation, name, normalize=False),
            CacheTier.LONG,
            compute,
            encode=lambda d: d.to_dict(),
            decode=SymbolDetails.from_dict,
        )
        return details

    def get_class_info(self, class_name: str) -> Optional[SymbolDetails]:
        """A class with its methods, or None if the class is unknown."""
        return self._details("class", _require(class_name, "class_name"),
                             SymbolKind.CLASS, (SymbolKind.METHOD,))

    def get_table_info(self, table_name: str) -> Optional[SymbolDetails]:
        """A table with its fields and methods, or None if the table is unknown."""
        return self._details("table", _require(table_name, "table_name"),
                             SymbolKind.TABLE, (SymbolKind.FIELD, SymbolKind.METHOD))

    def get_completions(self, class_name: str, prefix: str = "") -> List[Symbol]:
        """
        Methods and fields of a class or table whose name starts with ``prefix``.

        Matching is case-insensitive. Methods come first, then fields, each
        ordered by name.
        """
        class_name = _require(class_name, "class_name")
        prefix = (prefix or "").strip()

        def compute() -> List[Symbol]:
            members = (self.store.get_children(class_name, SymbolKind.METHOD)
                       + self.store.get_children(class_name, SymbolKind.FIELD))
            lowered = prefix.lower()
            return [m for m in members if m.name.lower().startswith(lowered)]

        members, _ = self.cache.with_cache(
            make_key("complete", f"{class_name}.{prefix}", normalize=False),
            CacheTier.LONG,
            compute,
            encode=_symbols_to_json,
            decode=_symbols_from_json,
        )
        return members

    # =========================================================================
    # Pattern analysis
    # =========================================================================

    def analyze_patterns(self, scenario: str, class_filter: Optional[str] = None,
                         limit: Optional[int] = None) -> PatternAnalysis:
        scenario = _require(scenario, "scenario")
        limit = clamp_limit(limit, DEFAULT_ANALYSIS_LIMIT)
        analysis, _ = self.cache.with_cache(
            make_key("patterns", scenario, limit=limit, scope=class_filter),
            CacheTier.MEDIUM,
            lambda: self.analyzer.analyze_patterns(scenario, class_filter, limit),
            encode=lambda a: a.to_dict(),
            decode=PatternAnalysis.from_dict,
        )
        return analysis

    def suggest_missing_methods(self, class_name: str, limit: Optional[int] = None) -> MissingMethodsReport:
        class_name = _require(class_name, "class_name")
        limit = clamp_limit(limit, DEFAULT_MISSING_LIMIT)
        report, _ = self.cache.with_cache(
            make_key("missing", class_name, limit=limit, normalize=False),
            CacheTier.MEDIUM,
            lambda: self.analyzer.suggest_missing_methods(class_name, limit),
            encode=lambda r: r.to_dict(),
            decode=MissingMethodsReport.from_dict,
        )
        return report

    def find_similar_methods(self, method_name: str, class_name: Optional[str] = None,
                             limit: Optional[int] = None) -> List[SimilarMethod]:
        method_name = _require(method_name, "method_name")
        limit = clamp_limit(limit, DEFAULT_SIMILAR_LIMIT)
        methods, _ = self.cache.with_cache(
            make_key("similar", method_name, limit=limit, normalize=False, scope=class_name),
            CacheTier.MEDIUM,
            lambda: self.analyzer.find_similar_methods(method_name, class_name, limit),
            encode=lambda ms: [m.to_dict() for m in ms],
            decode=lambda data: [SimilarMethod.from_dict(d) for d in data],
        )
        return methods

    def get_api_usage_patterns(self, api_name: str, limit: Optional[int] = None) -> ApiUsageReport:
        api_name = _require(api_name, "api_name")
        limit = clamp_limit(limit, DEFAULT_API_LIMIT)
        report, _ = self.cache.with_cache(
            make_key("api", api_name, limit=limit, normalize=False),
            CacheTier.MEDIUM,
            lambda: self.analyzer.get_api_usage_patterns(api_name, limit),
            encode=lambda r: r.to_dict(),
            decode=ApiUsageReport.from_dict,
        )
        return report

    # =========================================================================
    # Indexing and statistics
    # =========================================================================

    def reindex(
        self,
        root_path: Optional[Union[str, Path]] = None,
        models: Optional[Sequence[str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> IndexStats:
        """
        Index ``models`` under ``root_path`` (the configured metadata path by
        default), then drop every cached result and rebuild the term graph.

        Raises:
            InvalidArgumentError: If no root path is given or configured
            IndexingError: If the pass fails; the store keeps its prior state
        """
        root = root_path or self.config.metadata_path
        if not root:
            raise InvalidArgumentError("No metadata path given and METADATA_PATH is not configured")

        stats = self.store.bulk_index(
            root,
            models=list(models) if models else None,
            parser=self.parser,
            max_workers=self.config.max_workers,
            progress_callback=progress_callback,
        )
        if not self.store.integrity_check():
            logger.warning(f"Full-text index of {self.store.path} is inconsistent after indexing {stats.models}")
        self.cache.clear()
        graph = TermRelationshipGraph().build(self.store.iter_symbols())
        with self._graph_lock:
            self._graph = graph
        return stats

    def custom_models(self) -> List[str]:
        """Indexed models classified as custom by the configuration."""
        return self.config.filter_models(self.store.models())

    def stats(self) -> Dict[str, Any]:
        total = self.store.count()
        return {
            "loaded": total > 0,
            "db_path": str(self.store.path),
            "symbols": total,
            "by_kind": self.store.count_by_kind(),
            "models": self.store.models(),
            "custom_models": self.custom_models(),
            "cache": self.cache.stats(),
        }
