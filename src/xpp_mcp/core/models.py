"""
Core data models for XPP MCP.

This module defines the fundamental data structures used throughout the system
for representing indexed X++ symbols, parsed metadata files and the results
returned by the search and analysis operations.

All models are designed for:
- Immutability (frozen dataclasses for indexed data)
- Serialization (JSON-compatible via to_dict/from_dict, used by the cache)
- Strict typing at the storage boundary (no loosely-typed rows leak out)
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Optional, Any, Tuple


class SymbolKind(Enum):
    """
    Structural category of an indexed symbol.

    Attributes:
        CLASS: AxClass definition
        TABLE: AxTable definition
        METHOD: Method of a class or table
        FIELD: Field of a table
        ENUM: AxEnum definition
    """
    CLASS = "class"
    TABLE = "table"
    METHOD = "method"
    FIELD = "field"
    ENUM = "enum"

    def __str__(self) -> str:
        """String representation for serialization."""
        return self.value

    @property
    def is_member(self) -> bool:
        """True for kinds that always belong to a parent class or table."""
        return self in (SymbolKind.METHOD, SymbolKind.FIELD)

    @classmethod
    def from_string(cls, value: str) -> 'SymbolKind':
        """
        Create SymbolKind from string value.

        Args:
            value: String representation of symbol kind

        Returns:
            SymbolKind enum member

        Raises:
            ValueError: If value doesn't match any SymbolKind
        """
        for member in cls:
            if member.value == value.lower():
                return member
        raise ValueError(f"Invalid SymbolKind: {value}")


# Name suffix -> pattern type, checked in order
PATTERN_SUFFIXES: Tuple[Tuple[str, str], ...] = (
    ("Helper", "Helper"),
    ("Service", "Service"),
    ("Controller", "Controller"),
    ("Handler", "Handler"),
    ("Repository", "Repository"),
    ("Repo", "Repository"),
    ("Manager", "Manager"),
    ("Factory", "Factory"),
    ("Builder", "Builder"),
    ("Processor", "Processor"),
    ("Validator", "Validator"),
)

UNKNOWN_PATTERN = "Unknown"


def infer_pattern_type(name: str) -> str:
    """Infer a class role from its name suffix, or ``"Unknown"``."""
    for suffix, pattern in PATTERN_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return pattern
    return UNKNOWN_PATTERN


@dataclass(frozen=True)
class Symbol:
    """
    Represents a single indexed X++ declaration.

    This is the most critical model in the system - every class, table,
    method, field and enum found in the metadata is represented as a Symbol.

    Attributes:
        name: Identifier as declared (e.g., "CustTable", "validateWrite")
        kind: Structural category (CLASS, TABLE, METHOD, FIELD, ENUM)
        source_location: Path of the originating definition file (opaque)
        model: Logical package the symbol belongs to (e.g., "ApplicationSuite")
        parent: Owning class/table for methods and fields, None otherwise
        signature: Human-readable type/return/parameter summary
        description: Documentation or generated description
        tags: Classification labels (e.g., "validation", "builder-pattern")
        used_types: Classes/tables referenced by the symbol
        method_calls: Methods called by the symbol
        related_methods: Methods commonly used together with this one
        api_usage_patterns: Recorded usage examples, each a dict with
            "api", "initialization" and "methodSequence" keys
        typical_usages: Serialized example snippets
        usage_frequency: Number of references to the symbol
        complexity: Heuristic complexity score (0-100)
        pattern_type: Inferred role (e.g., "Helper", "Service")
        extends: Base class for classes
        implements: Implemented interfaces for classes
        source_snippet: First lines of the method body for preview
        inline_comments: Comments extracted from the method body
    """
    name: str
    kind: SymbolKind
    source_location: str
    model: str
    parent: Optional[str] = None
    signature: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    used_types: List[str] = field(default_factory=list)
    method_calls: List[str] = field(default_factory=list)
    related_methods: List[str] = field(default_factory=list)
    api_usage_patterns: List[Dict[str, Any]] = field(default_factory=list)
    typical_usages: List[str] = field(default_factory=list)
    usage_frequency: int = 0
    complexity: Optional[int] = None
    pattern_type: Optional[str] = None
    extends: Optional[str] = None
    implements: List[str] = field(default_factory=list)
    source_snippet: Optional[str] = None
    inline_comments: Optional[str] = None

    def __post_init__(self):
        """
        Validate symbol data after initialization.

        Raises:
            ValueError: If any validation constraint is violated
        """
        if not self.name:
            raise ValueError("Symbol name cannot be empty")
        if not isinstance(self.kind, SymbolKind):
            raise ValueError(f"kind must be SymbolKind enum, got {type(self.kind)}")
        if not self.model:
            raise ValueError("Symbol model cannot be empty")
        if self.kind.is_member and not self.parent:
            raise ValueError(f"{self.kind.value} symbol '{self.name}' requires a parent")
        if not self.kind.is_member and self.parent:
            raise ValueError(f"{self.kind.value} symbol '{self.name}' cannot have a parent")
        if self.usage_frequency < 0:
            raise ValueError(f"usage_frequency must be >= 0, got {self.usage_frequency}")

    @property
    def qualified_name(self) -> str:
        """
        Returns fully qualified name including parent if applicable.

        Returns:
            Qualified name (e.g., "CustTable.validateWrite" or "CustTable")
        """
        if self.parent:
            return f"{self.parent}.{self.name}"
        return self.name

    @property
    def effective_pattern_type(self) -> str:
        """Recorded pattern type, falling back to the name-suffix inference."""
        if self.pattern_type and self.pattern_type != UNKNOWN_PATTERN:
            return self.pattern_type
        return infer_pattern_type(self.name)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Symbol to dictionary for serialization.

        Returns:
            Dictionary representation with all fields
        """
        data = asdict(self)
        data['kind'] = self.kind.value  # Convert enum to string
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Symbol':
        """
        Create Symbol from dictionary.

        Args:
            data: Dictionary containing symbol data

        Returns:
            Symbol instance

        Raises:
            ValueError: If required fields are missing or invalid
        """
        if 'kind' in data and isinstance(data['kind'], str):
            data = data.copy()  # Don't modify original
            data['kind'] = SymbolKind.from_string(data['kind'])
        return cls(**data)


@dataclass(frozen=True)
class ParsedFile:
    """
    Represents a single parsed metadata file.

    Attributes:
        filepath: Path to the metadata file
        symbols: Symbols extracted from the file (owner first, then members)
        parse_time: Time taken to parse this file (seconds)
        error: None if parsing succeeded, error message if failed
    """
    filepath: str
    symbols: List[Symbol] = field(default_factory=list)
    parse_time: float = 0.0
    error: Optional[str] = None

    def __post_init__(self):
        if not self.filepath:
            raise ValueError("ParsedFile filepath cannot be empty")
        if self.parse_time < 0:
            raise ValueError(f"parse_time must be >= 0, got {self.parse_time}")

    @property
    def is_successful(self) -> bool:
        """True if no error occurred."""
        return self.error is None

    @property
    def symbol_count(self) -> int:
        return len(self.symbols)

    def get_symbols_by_kind(self, kind: SymbolKind) -> List[Symbol]:
        """Filter symbols by kind."""
        return [s for s in self.symbols if s.kind == kind]


@dataclass
class IndexStats:
    """
    Statistics of one bulk indexing pass.

    Attributes:
        models: Model names indexed in this pass
        files_parsed: Number of metadata files handed to the parser
        symbols_indexed: Number of symbols written to the store
        parse_errors: Number of files skipped because they failed to parse
        duration_seconds: Wall-clock duration of the pass
        errors: Sample of (filepath, error) pairs for skipped files
    """
    models: List[str] = field(default_factory=list)
    files_parsed: int = 0
    symbols_indexed: int = 0
    parse_errors: int = 0
    duration_seconds: float = 0.0
    errors: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['errors'] = [list(e) for e in self.errors]
        return data


# =============================================================================
# Search results
# =============================================================================

@dataclass(frozen=True)
class SearchHit:
    """A search result with its origin and relevance score."""
    symbol: Symbol
    source: str = "external"  # "external" (store) or "workspace"
    relevance: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol.to_dict(),
            'source': self.source,
            'relevance': self.relevance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchHit':
        return cls(
            symbol=Symbol.from_dict(data['symbol']),
            source=data.get('source', 'external'),
            relevance=data.get('relevance', 0.0),
        )


@dataclass(frozen=True)
class SearchSuggestion:
    """
    An alternative query proposed for an empty or near-miss search.

    Attributes:
        type: "typo", "broader", "narrower" or "related"
        query: The proposed query text
        reason: Human-readable explanation
        confidence: Confidence score in [0, 1]
    """
    type: str
    query: str
    reason: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchSuggestion':
        return cls(**data)


# =============================================================================
# Pattern analysis results
# =============================================================================

@dataclass
class PatternGroup:
    """Classes sharing a pattern type within an analysis."""
    pattern_type: str
    count: int
    examples: List[str] = field(default_factory=list)


@dataclass
class NameFrequency:
    """A name and how many analysed classes it was found in."""
    name: str
    frequency: int


@dataclass
class PatternAnalysis:
    """Result of a scenario pattern analysis."""
    scenario: str
    total_matches: int = 0
    patterns: List[PatternGroup] = field(default_factory=list)
    common_methods: List[NameFrequency] = field(default_factory=list)
    common_dependencies: List[NameFrequency] = field(default_factory=list)
    example_classes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatternAnalysis':
        return cls(
            scenario=data['scenario'],
            total_matches=data.get('total_matches', 0),
            patterns=[PatternGroup(**p) for p in data.get('patterns', [])],
            common_methods=[NameFrequency(**m) for m in data.get('common_methods', [])],
            common_dependencies=[NameFrequency(**d) for d in data.get('common_dependencies', [])],
            example_classes=list(data.get('example_classes', [])),
        )


@dataclass
class MissingMethod:
    """
    A method implemented by peer classes but absent from the target class.

    Attributes:
        method_name: Name of the missing method
        frequency: Number of peer classes implementing it
        total_classes: Number of peer classes sharing the pattern type
        percentage: frequency / total_classes * 100
    """
    method_name: str
    frequency: int
    total_classes: int
    percentage: float


@dataclass
class MissingMethodsReport:
    """Result of missing-method inference for one class."""
    class_name: str
    found: bool
    pattern_type: str = UNKNOWN_PATTERN
    existing_methods: List[str] = field(default_factory=list)
    peer_classes: int = 0
    suggestions: List[MissingMethod] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MissingMethodsReport':
        data = data.copy()
        data['suggestions'] = [MissingMethod(**s) for s in data.get('suggestions', [])]
        return cls(**data)


@dataclass
class SimilarMethod:
    """A method ranked as close to a requested method name."""
    class_name: str
    method_name: str
    signature: Optional[str]
    source_excerpt: Optional[str]
    complexity: Optional[int]
    tags: List[str] = field(default_factory=list)
    pattern_type: Optional[str] = None
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimilarMethod':
        return cls(**data)


@dataclass
class ApiUsagePattern:
    """A recurring way of initializing and calling an API."""
    initialization: List[str] = field(default_factory=list)
    method_sequence: List[str] = field(default_factory=list)
    usage_count: int = 0
    classes: List[str] = field(default_factory=list)
    examples: List[str] = field(default_factory=list)


@dataclass
class ApiUsageReport:
    """Aggregated usage of an API across the indexed symbols."""
    api_name: str
    usage_count: int = 0
    patterns: List[ApiUsagePattern] = field(default_factory=list)
    common_method_calls: List[NameFrequency] = field(default_factory=list)
    used_in_classes: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.usage_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApiUsageReport':
        return cls(
            api_name=data['api_name'],
            usage_count=data.get('usage_count', 0),
            patterns=[ApiUsagePattern(**p) for p in data.get('patterns', [])],
            common_method_calls=[NameFrequency(**c) for c in data.get('common_method_calls', [])],
            used_in_classes=list(data.get('used_in_classes', [])),
        )


# =============================================================================
# Service responses
# =============================================================================

@dataclass
class SearchResponse:
    """Hits of one search call, plus suggestions when nothing matched."""
    query: str
    hits: List[SearchHit] = field(default_factory=list)
    from_cache: bool = False
    suggestions: List[SearchSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'hits': [h.to_dict() for h in self.hits],
            'from_cache': self.from_cache,
            'suggestions': [s.to_dict() for s in self.suggestions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchResponse':
        return cls(
            query=data['query'],
            hits=[SearchHit.from_dict(h) for h in data.get('hits', [])],
            from_cache=data.get('from_cache', False),
            suggestions=[SearchSuggestion.from_dict(s) for s in data.get('suggestions', [])],
        )


@dataclass
class BatchSearchItem:
    """Outcome of one query inside a batch search."""
    query: str
    success: bool
    response: Optional[SearchResponse] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'success': self.success,
            'response': self.response.to_dict() if self.response else None,
            'error': self.error,
        }


@dataclass(frozen=True)
class SearchRequest:
    """
    One search as requested by a caller.

    Attributes:
        query: Search text; a trailing ``*`` requests a prefix match
        kinds: Kind filter, None for all kinds
        limit: Maximum number of hits, None for the configured default
        workspace_path: Local workspace whose metadata is merged into the hits
    """
    query: str
    kinds: Optional[Tuple[SymbolKind, ...]] = None
    limit: Optional[int] = None
    workspace_path: Optional[str] = None


@dataclass
class SymbolDetails:
    """A class or table together with its members (methods, fields)."""
    symbol: Symbol
    members: List[Symbol] = field(default_factory=list)

    def members_of_kind(self, kind: SymbolKind) -> List[Symbol]:
        return [m for m in self.members if m.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol.to_dict(),
            'members': [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SymbolDetails':
        return cls(
            symbol=Symbol.from_dict(data['symbol']),
            members=[Symbol.from_dict(m) for m in data.get('members', [])],
        )
