"""Custom exceptions for XPP MCP.

This module defines a hierarchy of exceptions for better error handling
and debugging throughout the indexing, search and analysis engine.

"Not found" is absent from this hierarchy: an unknown class,
table or API is reported as an explicit empty result, never raised.

Usage:
    from xpp_mcp.core.exceptions import ParseError, IndexingError

    try:
        parser.parse_file("CustHelper.xml")
    except ParseError as e:
        print(f"Failed to parse {e.filepath}: {e.details}")
"""


class XppMcpException(Exception):
    """Base exception for all XPP MCP operations.

    All custom exceptions inherit from this class, allowing the MCP layer
    to convert any domain failure into a tool error in one place.
    """
    pass


class ParseError(XppMcpException):
    """Raised when a metadata file cannot be parsed.

    Attributes:
        filepath: Path to the file that failed to parse
        kind: Kind of metadata expected in the file (class, table, enum)
        details: Specific error details
    """

    def __init__(self, filepath: str, kind: str, details: str):
        self.filepath = filepath
        self.kind = kind
        self.details = details
        super().__init__(f"Failed to parse {filepath} ({kind}): {details}")


class IndexingError(XppMcpException):
    """Raised when an indexing pass fails.

    This covers failures in the write phase of an indexing pass:
    - Missing metadata root directory
    - SQLite write errors (the transaction is rolled back)
    """
    pass


class StoreCorruptionError(XppMcpException):
    """Raised when the backing SQLite file cannot be opened or verified."""
    pass


class SearchError(XppMcpException):
    """Raised when a search query cannot be executed.

    This covers failures such as:
    - Malformed full-text query syntax reaching SQLite
    - Store access errors during a read
    """
    pass


class InvalidArgumentError(XppMcpException):
    """Raised when a structurally required argument is missing or malformed.

    Numeric arguments (limits) are clamped instead of rejected; this error
    is reserved for values an operation cannot run without, such as an
    empty class name.
    """
    pass


class ConfigurationError(XppMcpException):
    """Raised when configuration is invalid.

    This covers failures related to:
    - Invalid database paths
    - Malformed Redis URLs
    - Negative TTL values
    """
    pass
