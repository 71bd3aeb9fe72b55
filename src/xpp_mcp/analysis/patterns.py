"""
Pattern analysis over the indexed symbols.

Four read-only analyses answer "how is this usually done here?":

    - analyze_patterns: roles, common methods and dependencies of the
      classes matching a scenario
    - suggest_missing_methods: methods that peers of a class (same pattern
      type) implement but the class does not
    - find_similar_methods: methods ranked by name similarity and shared
      class context
    - get_api_usage_patterns: how an API is initialized and called

Unknown classes or APIs never raise; they yield an empty or not-found
result.
"""

import logging
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Set, Tuple

from xpp_mcp.core.models import (
    UNKNOWN_PATTERN,
    ApiUsagePattern,
    ApiUsageReport,
    MissingMethod,
    MissingMethodsReport,
    NameFrequency,
    PatternAnalysis,
    PatternGroup,
    SimilarMethod,
    Symbol,
    SymbolKind,
    infer_pattern_type,
)
from xpp_mcp.indexing.symbol_store import SymbolStore, escape_like
from xpp_mcp.parsers.enrichment import first_lines
from xpp_mcp.search.fuzzy import similarity

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({"with", "which", "will", "that", "this", "from", "have"})
MIN_KEYWORD_LENGTH = 4

TOP_METHODS = 20
TOP_DEPENDENCIES = 15
MAX_EXAMPLE_CLASSES = 10
MAX_GROUP_EXAMPLES = 5
TOP_API_CALLS = 10
MAX_API_EXAMPLES = 5
MAX_USED_IN_CLASSES = 10
MAX_FALLBACK_INIT_LINES = 3
SIMILAR_CANDIDATE_POOL = 500

_CAMEL_TOKENS = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")


def scenario_keywords(scenario: str) -> List[str]:
    """Words longer than 3 characters, minus stop words; the whole scenario if none remain."""
    words = [w for w in scenario.lower().split() if len(w) >= MIN_KEYWORD_LENGTH and w not in STOP_WORDS]
    if words:
        return list(dict.fromkeys(words))
    stripped = scenario.strip().lower()
    return [stripped] if stripped else []


def name_tokens(name: str) -> List[str]:
    """camelCase / PascalCase parts of ``name`` with at least 3 characters, lower-cased."""
    return list(dict.fromkeys(t.lower() for t in _CAMEL_TOKENS.findall(name) if len(t) >= 3))


def tag_overlap(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard overlap of two tag collections (0.0 when both are empty)."""
    left, right = set(a), set(b)
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def member_pattern(symbol: Symbol) -> str:
    """Pattern type of a method: the recorded one, else the owner's name suffix."""
    if symbol.pattern_type and symbol.pattern_type != UNKNOWN_PATTERN:
        return symbol.pattern_type
    return infer_pattern_type(symbol.parent or "")


def _top(counter: Counter, count: int) -> List[NameFrequency]:
    # most_common keeps first-seen order among equal counts
    return [NameFrequency(name, frequency) for name, frequency in counter.most_common(count)]


class PatternAnalyzer:
    """
    Read-only analyses over a SymbolStore.

    Attributes:
        store: Symbol store to query
        name_weight: Weight of name similarity in find_similar_methods
        context_weight: Weight of class context in find_similar_methods
    """

    def __init__(self, store: SymbolStore, name_weight: float = 0.7, context_weight: float = 0.3):
        self.store = store
        self.name_weight = name_weight
        self.context_weight = context_weight

    def _method_names(self, class_name: str) -> List[str]:
        return list(dict.fromkeys(m.name for m in self.store.get_children(class_name, SymbolKind.METHOD)))

    # =========================================================================
    # Scenario analysis
    # =========================================================================

    def analyze_patterns(self, scenario: str, class_filter: Optional[str] = None,
                         limit: int = 20) -> PatternAnalysis:
        """
        Summarize the classes relevant to a scenario.

        Args:
            scenario: Free-text description (e.g., "sales order validation")
            class_filter: Optional substring the class name must contain
            limit: Maximum number of classes analysed

        Returns:
            PatternAnalysis with pattern groups, top methods and dependencies
        """
        keywords = scenario_keywords(scenario)
        if not keywords:
            return PatternAnalysis(scenario=scenario)

        conditions = " OR ".join("name LIKE ? ESCAPE '\\' OR tags LIKE ? ESCAPE '\\'" for _ in keywords)
        params: List[object] = []
        for keyword in keywords:
            like = f"%{escape_like(keyword)}%"
            params.extend([like, like])
        sql = f"SELECT * FROM symbols WHERE kind = ? AND ({conditions})"
        params.insert(0, SymbolKind.CLASS.value)
        if class_filter:
            sql += " AND name LIKE ? ESCAPE '\\'"
            params.append(f"%{escape_like(class_filter)}%")
        sql += " ORDER BY id LIMIT ?"
        params.append(max(1, limit))

        classes = self.store.fetch_symbols(sql, params)

        methods: Counter = Counter()
        dependencies: Counter = Counter()
        groups: Dict[str, PatternGroup] = {}
        for cls in classes:
            methods.update(self._method_names(cls.name))
            dependencies.update(dict.fromkeys(t.strip() for t in cls.used_types if t.strip()))
            pattern = cls.effective_pattern_type
            group = groups.setdefault(pattern, PatternGroup(pattern_type=pattern, count=0))
            group.count += 1
            if len(group.examples) < MAX_GROUP_EXAMPLES:
                group.examples.append(cls.name)

        logger.debug(f"Pattern analysis for {scenario!r}: {len(classes)} classes, keywords {keywords}")
        return PatternAnalysis(
            scenario=scenario,
            total_matches=len(classes),
            patterns=list(groups.values()),
            common_methods=_top(methods, TOP_METHODS),
            common_dependencies=_top(dependencies, TOP_DEPENDENCIES),
            example_classes=[c.name for c in classes[:MAX_EXAMPLE_CLASSES]],
        )

    # =========================================================================
    # Missing methods
    # =========================================================================

    def peer_classes(self, target: Symbol) -> List[Symbol]:
        """Other classes with the same effective pattern type as ``target``."""
        pattern = target.effective_pattern_type
        if pattern == UNKNOWN_PATTERN:
            return []
        candidates = self.store.fetch_symbols(
            "SELECT * FROM symbols WHERE kind = ? AND name != ? "
            "AND (pattern_type = ? OR pattern_type IS NULL OR pattern_type = ?) ORDER BY id",
            (SymbolKind.CLASS.value, target.name, pattern, UNKNOWN_PATTERN),
        )
        peers = []
        seen: Set[str] = set()
        for candidate in candidates:
            if candidate.effective_pattern_type == pattern and candidate.name not in seen:
                seen.add(candidate.name)
                peers.append(candidate)
        return peers

    def suggest_missing_methods(self, class_name: str, limit: int = 10) -> MissingMethodsReport:
        """
        Methods implemented by peer classes but absent from ``class_name``.

        Each suggestion reports how many peers implement the method and the
        percentage ``frequency / total_classes * 100``. Sorted by frequency,
        most common first.
        """
        target = self.store.get_by_name(class_name, SymbolKind.CLASS)
        if target is None:
            return MissingMethodsReport(class_name=class_name, found=False)

        existing = self._method_names(class_name)
        existing_set = set(existing)
        peers = self.peer_classes(target)

        frequency: Counter = Counter()
        for peer in peers:
            frequency.update(name for name in self._method_names(peer.name) if name not in existing_set)

        total = len(peers)
        suggestions = [
            MissingMethod(method_name=name, frequency=count, total_classes=total,
                          percentage=count / total * 100)
            for name, count in frequency.most_common(max(0, limit))
        ]
        return MissingMethodsReport(
            class_name=class_name,
            found=True,
            pattern_type=target.effective_pattern_type,
            existing_methods=existing,
            peer_classes=total,
            suggestions=suggestions,
        )

    # =========================================================================
    # Similar methods
    # =========================================================================

    def _reference_method(self, method_name: str, class_name: Optional[str]) -> Optional[Symbol]:
        if class_name:
            for method in self.store.get_children(class_name, SymbolKind.METHOD):
                if method.name == method_name:
                    return method
            return None
        return self.store.get_by_name(method_name, SymbolKind.METHOD)

    def find_similar_methods(self, method_name: str, class_name: Optional[str] = None,
                             limit: int = 10) -> List[SimilarMethod]:
        """
        Methods similar to ``method_name``, best first.

        score = name_weight * name similarity + context_weight * context,
        where context is 1.0 when the candidate's class shares the reference
        pattern type, else the Jaccard overlap of tags. The reference is the
        method in ``class_name`` (or the first method of that name).
        """
        method_name = (method_name or "").strip()
        if not method_name:
            return []

        reference = self._reference_method(method_name, class_name)
        if class_name:
            target_class = self.store.get_by_name(class_name, SymbolKind.CLASS)
            ref_pattern = target_class.effective_pattern_type if target_class else infer_pattern_type(class_name)
            ref_tags = reference.tags if reference else (target_class.tags if target_class else [])
        elif reference is not None:
            ref_pattern = member_pattern(reference)
            ref_tags = reference.tags
        else:
            ref_pattern, ref_tags = UNKNOWN_PATTERN, []

        fragments = list(dict.fromkeys([method_name.lower()] + name_tokens(method_name)))
        conditions = " OR ".join("name LIKE ? ESCAPE '\\'" for _ in fragments)
        candidates = self.store.fetch_symbols(
            f"SELECT * FROM symbols WHERE kind = ? AND ({conditions}) ORDER BY id LIMIT ?",
            [SymbolKind.METHOD.value, *(f"%{escape_like(f)}%" for f in fragments), SIMILAR_CANDIDATE_POOL],
        )

        scored: List[Tuple[float, int, str, str, Symbol]] = []
        for candidate in candidates:
            if reference is not None and candidate.name == reference.name and candidate.parent == reference.parent:
                continue
            pattern = member_pattern(candidate)
            if ref_pattern != UNKNOWN_PATTERN and pattern == ref_pattern:
                context = 1.0
            else:
                context = tag_overlap(ref_tags, candidate.tags)
            score = self.name_weight * similarity(method_name, candidate.name) + self.context_weight * context
            scored.append((score, candidate.complexity or 0, candidate.parent or "", candidate.name, candidate))

        scored.sort(key=lambda s: (-s[0], s[1], s[2], s[3]))
        return [
            SimilarMethod(
                class_name=symbol.parent or "",
                method_name=symbol.name,
                signature=symbol.signature,
                source_excerpt=first_lines(symbol.source_snippet) if symbol.source_snippet else None,
                complexity=symbol.complexity,
                tags=list(symbol.tags),
                pattern_type=member_pattern(symbol),
                score=round(score, 4),
            )
            for score, _, _, _, symbol in scored[:max(0, limit)]
        ]

    # =========================================================================
    # API usage
    # =========================================================================

    @staticmethod
    def _references(symbol: Symbol, api_lower: str) -> bool:
        return (
            any(t.lower() == api_lower for t in symbol.used_types)
            or any(c.lower() == api_lower for c in symbol.method_calls)
        )

    @staticmethod
    def _usage_shapes(symbol: Symbol, api_name: str) -> List[Tuple[Tuple[str, ...], Tuple[str, ...]]]:
        api_lower = api_name.lower()
        shapes = [
            (tuple(p.get("initialization") or []), tuple(p.get("methodSequence") or []))
            for p in symbol.api_usage_patterns
            if str(p.get("api", "")).lower() == api_lower
        ]
        if shapes:
            return shapes
        lines = [
            line.strip() for line in (symbol.source_snippet or "").splitlines()
            if api_lower in line.lower()
        ][:MAX_FALLBACK_INIT_LINES]
        return [(tuple(lines), tuple(symbol.method_calls))]

    def get_api_usage_patterns(self, api_name: str, limit: int = 50) -> ApiUsageReport:
        """
        How ``api_name`` is initialized and called across indexed methods.

        Identical (initialization, method sequence) pairs are grouped. Methods
        without a recorded pattern contribute their snippet lines mentioning
        the API and their recorded calls.
        """
        api_name = (api_name or "").strip()
        if not api_name:
            return ApiUsageReport(api_name=api_name)

        api_lower = api_name.lower()
        like = f"%{escape_like(api_name)}%"
        candidates = self.store.fetch_symbols(
            "SELECT * FROM symbols WHERE kind = ? "
            "AND (used_types LIKE ? ESCAPE '\\' OR method_calls LIKE ? ESCAPE '\\') ORDER BY id",
            (SymbolKind.METHOD.value, like, like),
        )
        users = [s for s in candidates if self._references(s, api_lower)][:max(1, limit)]
        if not users:
            return ApiUsageReport(api_name=api_name)

        groups: Dict[Tuple[Tuple[str, ...], Tuple[str, ...]], ApiUsagePattern] = {}
        calls: Counter = Counter()
        classes: List[str] = []
        for symbol in users:
            calls.update(dict.fromkeys(symbol.method_calls))
            if symbol.parent and symbol.parent not in classes:
                classes.append(symbol.parent)
            for shape in self._usage_shapes(symbol, api_name):
                group = groups.get(shape)
                if group is None:
                    group = groups[shape] = ApiUsagePattern(
                        initialization=list(shape[0]), method_sequence=list(shape[1]))
                group.usage_count += 1
                if symbol.parent and symbol.parent not in group.classes:
                    group.classes.append(symbol.parent)
                if len(group.examples) < MAX_API_EXAMPLES:
                    group.examples.append(symbol.qualified_name)

        patterns = sorted(groups.values(), key=lambda g: -g.usage_count)
        return ApiUsageReport(
            api_name=api_name,
            usage_count=len(users),
            patterns=patterns,
            common_method_calls=_top(calls, TOP_API_CALLS),
            used_in_classes=classes[:MAX_USED_IN_CLASSES],
        )
