"""
Parsers for XPP MCP.

This module turns extracted JSON metadata and AOT XML files into Symbol
records.
"""

from .metadata_parser import MetadataParser, ThreadLocalParserFactory, parse_signature

__all__ = [
    "MetadataParser",
    "ThreadLocalParserFactory",
    "parse_signature",
]
