"""
Core data models and structures for XPP MCP.

This module provides the foundational data structures and exceptions used
throughout the indexing, search and analysis system.
"""

from .models import (
    SymbolKind,
    Symbol,
    ParsedFile,
    IndexStats,
    SearchHit,
    SearchSuggestion,
    SearchResponse,
    BatchSearchItem,
    SearchRequest,
    SymbolDetails,
    infer_pattern_type,
)
from .interfaces import IParser
from .exceptions import (
    XppMcpException,
    ParseError,
    IndexingError,
    StoreCorruptionError,
    SearchError,
    InvalidArgumentError,
    ConfigurationError,
)

__all__ = [
    "SymbolKind",
    "Symbol",
    "ParsedFile",
    "IndexStats",
    "SearchHit",
    "SearchSuggestion",
    "SearchResponse",
    "BatchSearchItem",
    "SearchRequest",
    "SymbolDetails",
    "infer_pattern_type",
    "IParser",
    "XppMcpException",
    "ParseError",
    "IndexingError",
    "StoreCorruptionError",
    "SearchError",
    "InvalidArgumentError",
    "ConfigurationError",
]
