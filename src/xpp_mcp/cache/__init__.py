"""
Result cache for XPP MCP.

A Redis-backed cache with tiered expiry and exact-then-fuzzy key lookup.
"""

from .symbol_cache import (
    CacheKey,
    CacheTier,
    SymbolCache,
    are_keys_compatible,
    make_key,
    normalize_query,
    parse_key,
)

__all__ = [
    "CacheKey",
    "CacheTier",
    "SymbolCache",
    "are_keys_compatible",
    "make_key",
    "normalize_query",
    "parse_key",
]
