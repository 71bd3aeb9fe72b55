"""
Abstract interfaces for XPP MCP components.

This module defines the contracts that keep the indexing pipeline swappable.
The store and workspace scanner only depend on IParser, so alternative
metadata sources (a different export format, a remote catalogue) can be
plugged in without touching the indexing code.

When to implement each interface:
    - IParser: When adding support for a new metadata file format
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from .models import ParsedFile


class IParser(ABC):
    """Abstract interface for metadata parsers.

    Parsers read one metadata file and turn it into Symbol records: the
    owning class/table/enum first, followed by its methods and fields.

    Responsibilities:
        - Detect if a file can be parsed based on extension or content
        - Extract symbols and their analytic attributes (tags, pattern type,
          complexity, used types)
        - Report malformed files through ParsedFile.error instead of raising
        - Report supported file extensions

    Example implementation:
        >>> class CsvParser(IParser):
        ...     def can_parse(self, filepath: str) -> bool:
        ...         return filepath.endswith('.csv')
        ...
        ...     def parse_file(self, filepath, model=None) -> ParsedFile:
        ...         return ParsedFile(filepath, symbols)
        ...
        ...     def get_supported_extensions(self) -> List[str]:
        ...         return ['.csv']
    """

    @abstractmethod
    def can_parse(self, filepath: str) -> bool:
        """Determine if this parser can handle the given file.

        This method should be fast as it's called for every file discovered
        under a metadata root.

        Args:
            filepath: Path to the file to check

        Returns:
            True if this parser can parse the file, False otherwise
        """
        pass  # pragma: no cover

    @abstractmethod
    def parse_file(self, filepath: str, model: Optional[str] = None) -> ParsedFile:
        """Parse a metadata file and extract all symbols.

        Args:
            filepath: Path to the file to parse
            model: Model the symbols belong to. Implementations derive it
                from the file location when omitted.

        Returns:
            ParsedFile object containing all extracted symbols

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        pass  # pragma: no cover

    @abstractmethod
    def get_supported_extensions(self) -> List[str]:
        """Return list of file extensions this parser supports.

        Extensions include the leading dot (e.g., '.json', not 'json').

        Returns:
            List of file extensions (with leading dots)
        """
        pass  # pragma: no cover
