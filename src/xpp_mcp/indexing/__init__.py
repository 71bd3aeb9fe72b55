"""
XPP MCP Indexing Module.

This module builds and queries the persistent symbol index:
- SymbolStore: SQLite symbol table with a trigger-maintained FTS5 projection
- parallel_parse_files: Parallel metadata parsing for faster indexing
- scan_workspace: Transient symbols from a local workspace for hybrid search

Usage:
    from xpp_mcp.indexing import SymbolStore

    store = SymbolStore.open("data/xpp-metadata.db")
    stats = store.bulk_index("/path/to/metadata")
    print(f"Indexed {stats.symbols_indexed} symbols")
"""

from xpp_mcp.indexing.symbol_store import SymbolStore

from xpp_mcp.indexing.parallel_indexer import (
    parallel_parse_files,
    ParseResult,
    ParallelProgress,
)

from xpp_mcp.indexing.workspace import scan_workspace

__all__ = [
    'SymbolStore',
    'parallel_parse_files',
    'ParseResult',
    'ParallelProgress',
    'scan_workspace',
]
