"""
Parallel parsing utilities for XPP MCP.

This module provides thread-safe parallel parsing of metadata files for an
indexing pass. It uses ThreadPoolExecutor for concurrent parsing while
maintaining progress reporting and per-file failure isolation: a file that
fails to parse is counted and reported, never raised.

Results are returned in input order regardless of completion order, so an
indexing pass over the same files always inserts symbols in the same order.

Usage:
    >>> from xpp_mcp.indexing.parallel_indexer import parallel_parse_files
    >>> symbols, errors = parallel_parse_files([(path, "ApplicationSuite")], max_workers=4)
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Callable, Optional, Dict, Any, Tuple

from xpp_mcp.core.models import Symbol
from xpp_mcp.parsers.metadata_parser import ThreadLocalParserFactory

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Dict[str, Any]], None]


@dataclass
class ParseResult:
    """
    Result of parsing a single file.

    Attributes:
        filepath: Path to the parsed file
        symbols: List of extracted symbols (empty if parsing failed)
        success: True if parsing succeeded, False otherwise
        error: Error message if parsing failed, None otherwise
    """
    filepath: str
    symbols: List[Symbol]
    success: bool
    error: Optional[str] = None


@dataclass
class ParallelProgress:
    """
    Thread-safe progress tracking for parallel operations.

    Uses a lock to ensure atomic updates to counters from multiple threads.

    Attributes:
        total: Total number of items to process
        _completed: Number of completed items (access via .completed property)
        _errors: Number of errors encountered (access via .errors property)
    """
    total: int
    _completed: int = 0
    _errors: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def completed(self) -> int:
        """Get the number of completed items (thread-safe)."""
        with self._lock:
            return self._completed

    @property
    def errors(self) -> int:
        """Get the number of errors encountered (thread-safe)."""
        with self._lock:
            return self._errors

    def increment_completed(self) -> int:
        """Increment the completed count and return new value (thread-safe)."""
        with self._lock:
            self._completed += 1
            return self._completed

    def increment_errors(self) -> int:
        """Increment the error count and return new value (thread-safe)."""
        with self._lock:
            self._errors += 1
            return self._errors


def default_worker_count(max_workers: Optional[int] = None) -> int:
    """CPU count - 1 (minimum 1, maximum 32) unless ``max_workers`` is given."""
    if max_workers is not None:
        return max(1, max_workers)
    cpu_count = os.cpu_count() or 4
    return max(1, min(cpu_count - 1, 32))


def parse_file_worker(
    filepath: Path,
    model: Optional[str],
    parser_factory: ThreadLocalParserFactory
) -> ParseResult:
    """
    Worker function for parallel file parsing.

    Called by ThreadPoolExecutor for each file. Any exception raised by the
    parser is converted into a failed ParseResult.

    Args:
        filepath: Path to file to parse
        model: Model the file belongs to
        parser_factory: Thread-local parser factory

    Returns:
        ParseResult with symbols or error information
    """
    parser = parser_factory.get_parser()
    try:
        parsed = parser.parse_file(str(filepath), model)
        return ParseResult(
            filepath=str(filepath),
            symbols=list(parsed.symbols),
            success=parsed.error is None,
            error=parsed.error
        )
    except Exception as e:
        logger.debug(f"Parser raised for {filepath}: {e}", exc_info=True)
        return ParseResult(
            filepath=str(filepath),
            symbols=[],
            success=False,
            error=str(e)
        )


def parallel_parse_files(
    files: List[Tuple[Path, Optional[str]]],
    max_workers: Optional[int] = None,
    progress_callback: Optional[ProgressCallback] = None,
    parser_factory: Optional[ThreadLocalParserFactory] = None,
) -> Tuple[List[Symbol], List[Tuple[str, str]]]:
    """
    Parse multiple metadata files in parallel using ThreadPoolExecutor.

    Args:
        files: List of (file path, model name) pairs to parse
        max_workers: Number of worker threads. If None, defaults to
                    (CPU count - 1) to leave one core free for the main thread.
        progress_callback: Optional callback for progress events.
                          Called with (event_type, data) for each event.
                          Event types: 'file_parsed', 'parse_error'
        parser_factory: Factory providing per-thread parsers. Defaults to
                        MetadataParser instances.

    Returns:
        Tuple of (all_symbols, errors) where:
            - all_symbols: Symbols of all successfully parsed files, in input order
            - errors: (filepath, error message) for every file that failed
    """
    if not files:
        return [], []

    parser_factory = parser_factory or ThreadLocalParserFactory()
    progress = ParallelProgress(total=len(files))
    results: List[Optional[ParseResult]] = [None] * len(files)

    def emit(event_type: str, data: dict):
        """Emit a progress event if callback is provided."""
        if progress_callback:
            try:
                progress_callback(event_type, data)
            except Exception as e:
                # Progress reporting must not abort the pass
                logger.debug(f"Progress callback failed on {event_type}: {e}")

    with ThreadPoolExecutor(max_workers=default_worker_count(max_workers)) as executor:
        future_to_index = {
            executor.submit(parse_file_worker, path, model, parser_factory): i
            for i, (path, model) in enumerate(files)
        }

        for future in as_completed(future_to_index):
            index = future_to_index[future]
            result = future.result()
            results[index] = result
            completed = progress.increment_completed()

            if result.success:
                emit("file_parsed", {
                    "path": result.filepath,
                    "symbols": len(result.symbols),
                    "index": completed,
                    "total": progress.total
                })
            else:
                progress.increment_errors()
                emit("parse_error", {
                    "path": result.filepath,
                    "error": result.error
                })

    all_symbols: List[Symbol] = []
    errors: List[Tuple[str, str]] = []
    for result in results:
        if result.success:
            all_symbols.extend(result.symbols)
        else:
            errors.append((result.filepath, result.error or "unknown error"))

    return all_symbols, errors
