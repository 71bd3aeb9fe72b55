"""
Workspace scanning for hybrid search.

A developer's local workspace holds metadata files that are not (yet) part
of the indexed store. scan_workspace parses them into transient Symbol
records that the hybrid search merges with store hits, preferring the
workspace copy of a name.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from xpp_mcp.core.interfaces import IParser
from xpp_mcp.core.models import Symbol
from xpp_mcp.parsers.metadata_parser import MetadataParser

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({".git", "node_modules", "bin", "obj", ".vs"})
MAX_WORKSPACE_FILES = 5000
WORKSPACE_MODEL = "Workspace"


def scan_workspace(
    path: Union[str, Path],
    parser: Optional[IParser] = None,
    max_files: int = MAX_WORKSPACE_FILES,
) -> List[Symbol]:
    """
    Parse every supported metadata file below ``path``.

    Files that fail to parse are skipped with a warning. Symbols are tagged
    with the model of their ``<Model>/<category>/<file>`` layout when there
    is one, else with ``"Workspace"``.

    Args:
        path: Workspace root directory
        parser: IParser to use (MetadataParser by default)
        max_files: Stop after this many files

    Returns:
        Symbols of all parsed files, in path order
    """
    root = Path(path)
    if not root.is_dir():
        logger.warning(f"Workspace path is not a directory: {root}")
        return []
    parser = parser or MetadataParser()

    symbols: List[Symbol] = []
    scanned = 0
    for file_path in sorted(root.rglob("*")):
        if scanned >= max_files:
            logger.warning(f"Workspace scan stopped after {max_files} files: {root}")
            break
        if not file_path.is_file() or IGNORED_DIRS.intersection(file_path.relative_to(root).parts):
            continue
        if not parser.can_parse(str(file_path)):
            continue
        scanned += 1

        relative = file_path.relative_to(root).parts
        model = relative[-3] if len(relative) >= 3 else WORKSPACE_MODEL
        parsed = parser.parse_file(str(file_path), model)
        if parsed.error:
            logger.warning(f"Skipping workspace file {file_path}: {parsed.error}")
            continue
        symbols.extend(parsed.symbols)

    logger.debug(f"Workspace scan of {root}: {scanned} files, {len(symbols)} symbols")
    return symbols
