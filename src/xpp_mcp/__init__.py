"""
XPP MCP - Model Context Protocol server for X++ (Dynamics 365 F&O) metadata.

Indexes extracted X++ metadata (classes, tables, methods, fields, enums) into
a SQLite full-text store and offers fuzzy search, search suggestions, code
pattern analysis and a Redis result cache to AI assistants over MCP.

Usage:
    # As an MCP server
    xpp-mcp

    # Programmatic usage
    from xpp_mcp import IndexConfig, IndexService
    service = IndexService.from_config(IndexConfig(db_path="data/xpp.db"))
    service.reindex("/path/to/metadata")
    print(service.search("CustHelper").hits)
"""

__version__ = "0.1.0"
__author__ = "XPP MCP Contributors"


# Lazy imports to avoid opening the store or importing fastmcp at import time
def __getattr__(name: str):
    """Lazy import heavy modules only when accessed."""
    if name == "IndexService":
        from xpp_mcp.service import IndexService

        return IndexService
    elif name == "IndexConfig":
        from xpp_mcp.config import IndexConfig

        return IndexConfig
    elif name == "SymbolStore":
        from xpp_mcp.indexing.symbol_store import SymbolStore

        return SymbolStore
    elif name == "SymbolCache":
        from xpp_mcp.cache.symbol_cache import SymbolCache

        return SymbolCache
    elif name == "MetadataParser":
        from xpp_mcp.parsers.metadata_parser import MetadataParser

        return MetadataParser
    elif name == "Symbol":
        from xpp_mcp.core.models import Symbol

        return Symbol
    elif name == "SymbolKind":
        from xpp_mcp.core.models import SymbolKind

        return SymbolKind
    elif name == "ParsedFile":
        from xpp_mcp.core.models import ParsedFile

        return ParsedFile
    elif name == "IParser":
        from xpp_mcp.core.interfaces import IParser

        return IParser
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "__author__",
    "IndexService",
    "IndexConfig",
    "SymbolStore",
    "SymbolCache",
    "MetadataParser",
    "Symbol",
    "SymbolKind",
    "ParsedFile",
    "IParser",
]
