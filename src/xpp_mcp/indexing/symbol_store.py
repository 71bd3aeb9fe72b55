"""
SymbolStore - SQLite persistence for indexed X++ symbols.

The store keeps one ``symbols`` table plus an FTS5 external-content table
(``symbols_fts``) over the searchable text columns. The FTS projection is
maintained by triggers, so it changes in the same transaction as the base
table: a symbol is visible to ranked search iff it is visible to exact
lookup.

Concurrency model:
    - One SQLite connection per thread (thread-local), opened lazily
    - WAL journal: readers never block on the writer and see either the
      state before or after a write transaction, never a mix
    - All writes are serialized by a process-level lock and run inside an
      explicit BEGIN IMMEDIATE / COMMIT

Usage:
    >>> store = SymbolStore.open("data/xpp-metadata.db")
    >>> stats = store.bulk_index("metadata", models=["ApplicationSuite"])
    >>> store.get_by_name("CustTable", SymbolKind.TABLE)
"""

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from xpp_mcp.core.exceptions import ConfigurationError, IndexingError, StoreCorruptionError
from xpp_mcp.core.interfaces import IParser
from xpp_mcp.core.models import IndexStats, Symbol, SymbolKind
from xpp_mcp.indexing.parallel_indexer import ProgressCallback, parallel_parse_files
from xpp_mcp.parsers.metadata_parser import CATEGORY_DIRS, MetadataParser, ThreadLocalParserFactory

logger = logging.getLogger(__name__)

# Number of (file, error) pairs kept in IndexStats
MAX_REPORTED_ERRORS = 20

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS symbols (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    parent TEXT,
    signature TEXT,
    source_location TEXT NOT NULL,
    model TEXT NOT NULL,
    description TEXT,
    tags TEXT,
    used_types TEXT,
    method_calls TEXT,
    related_methods TEXT,
    api_usage_patterns TEXT,
    typical_usages TEXT,
    usage_frequency INTEGER NOT NULL DEFAULT 0,
    complexity INTEGER,
    pattern_type TEXT,
    extends TEXT,
    implements TEXT,
    source_snippet TEXT,
    inline_comments TEXT
);

CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols(name);
CREATE INDEX IF NOT EXISTS idx_symbols_kind ON symbols(kind);
CREATE INDEX IF NOT EXISTS idx_symbols_model ON symbols(model);
CREATE INDEX IF NOT EXISTS idx_symbols_parent ON symbols(parent, kind);
CREATE INDEX IF NOT EXISTS idx_symbols_pattern_type ON symbols(pattern_type);

CREATE VIRTUAL TABLE IF NOT EXISTS symbols_fts USING fts5(
    name,
    kind,
    parent,
    signature,
    description,
    tags,
    source_snippet,
    inline_comments,
    content='symbols',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS symbols_ai AFTER INSERT ON symbols BEGIN
    INSERT INTO symbols_fts(rowid, name, kind, parent, signature, description, tags,
                            source_snippet, inline_comments)
    VALUES (new.id, new.name, new.kind, new.parent, new.signature, new.description,
            new.tags, new.source_snippet, new.inline_comments);
END;

CREATE TRIGGER IF NOT EXISTS symbols_ad AFTER DELETE ON symbols BEGIN
    INSERT INTO symbols_fts(symbols_fts, rowid, name, kind, parent, signature, description,
                            tags, source_snippet, inline_comments)
    VALUES ('delete', old.id, old.name, old.kind, old.parent, old.signature,
            old.description, old.tags, old.source_snippet, old.inline_comments);
END;

CREATE TRIGGER IF NOT EXISTS symbols_au AFTER UPDATE ON symbols BEGIN
    INSERT INTO symbols_fts(symbols_fts, rowid, name, kind, parent, signature, description,
                            tags, source_snippet, inline_comments)
    VALUES ('delete', old.id, old.name, old.kind, old.parent, old.signature,
            old.description, old.tags, old.source_snippet, old.inline_comments);
    INSERT INTO symbols_fts(rowid, name, kind, parent, signature, description, tags,
                            source_snippet, inline_comments)
    VALUES (new.id, new.name, new.kind, new.parent, new.signature, new.description,
            new.tags, new.source_snippet, new.inline_comments);
END;
"""

COLUMNS = (
    "name", "kind", "parent", "signature", "source_location", "model", "description",
    "tags", "used_types", "method_calls", "related_methods", "api_usage_patterns",
    "typical_usages", "usage_frequency", "complexity", "pattern_type", "extends",
    "implements", "source_snippet", "inline_comments",
)

INSERT_SQL = (
    f"INSERT INTO symbols ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in COLUMNS)})"
)

KindFilter = Optional[Sequence[SymbolKind]]


def _join(values: List[str]) -> Optional[str]:
    return ", ".join(values) if values else None


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _json_list(value: Optional[str]) -> List[Any]:
    if not value:
        return []
    try:
        loaded = json.loads(value)
    except ValueError:
        logger.debug(f"Ignoring malformed JSON column value: {value[:80]!r}")
        return []
    return loaded if isinstance(loaded, list) else [loaded]


def symbol_to_row(symbol: Symbol) -> Tuple[Any, ...]:
    """Map a Symbol onto the ``symbols`` column order."""
    return (
        symbol.name,
        symbol.kind.value,
        symbol.parent,
        symbol.signature,
        symbol.source_location,
        symbol.model,
        symbol.description,
        _join(symbol.tags),
        _join(symbol.used_types),
        _join(symbol.method_calls),
        _join(symbol.related_methods),
        json.dumps(symbol.api_usage_patterns) if symbol.api_usage_patterns else None,
        json.dumps(symbol.typical_usages) if symbol.typical_usages else None,
        symbol.usage_frequency,
        symbol.complexity,
        symbol.pattern_type,
        symbol.extends,
        _join(symbol.implements),
        symbol.source_snippet,
        symbol.inline_comments,
    )


def row_to_symbol(row: sqlite3.Row) -> Symbol:
    """Map a ``symbols`` row back onto a Symbol."""
    return Symbol(
        name=row["name"],
        kind=SymbolKind.from_string(row["kind"]),
        parent=row["parent"],
        signature=row["signature"],
        source_location=row["source_location"],
        model=row["model"],
        description=row["description"],
        tags=_split(row["tags"]),
        used_types=_split(row["used_types"]),
        method_calls=_split(row["method_calls"]),
        related_methods=_split(row["related_methods"]),
        api_usage_patterns=_json_list(row["api_usage_patterns"]),
        typical_usages=[str(u) for u in _json_list(row["typical_usages"])],
        usage_frequency=row["usage_frequency"] or 0,
        complexity=row["complexity"],
        pattern_type=row["pattern_type"],
        extends=row["extends"],
        implements=_split(row["implements"]),
        source_snippet=row["source_snippet"],
        inline_comments=row["inline_comments"],
    )


def kind_clause(kinds: KindFilter, column: str = "kind") -> Tuple[str, List[str]]:
    """SQL fragment and parameters restricting ``column`` to ``kinds``."""
    if not kinds:
        return "", []
    values = sorted({k.value for k in kinds})
    return f" AND {column} IN ({', '.join('?' for _ in values)})", values


def escape_like(value: str) -> str:
    """Escape LIKE wildcards; use with ``ESCAPE '\\'``."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SymbolStore:
    """
    Persistent symbol store backed by a single SQLite file.

    Attributes:
        path: Location of the database file
        recovered: True if open() had to discard a corrupt file

    Thread Safety:
        This class IS thread-safe. Each thread uses its own connection;
        writes are serialized by an internal lock.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Open (or create) the store at ``path`` and ensure the schema exists.

        Raises:
            ConfigurationError: If ``path`` is an in-memory database
            sqlite3.DatabaseError: If the file is not a usable database
        """
        if str(path) == ":memory:":
            raise ConfigurationError("SymbolStore requires a file path; ':memory:' is not shared between threads")
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.recovered = False
        self._local = threading.local()
        # (owning thread, connection); connections of finished threads are closed lazily
        self._connections: List[Tuple[threading.Thread, sqlite3.Connection]] = []
        self._connections_lock = threading.Lock()
        self._write_lock = threading.RLock()
        try:
            self._initialize()
        except sqlite3.DatabaseError:
            self.close()
            raise

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @classmethod
    def open(cls, path: Union[str, Path]) -> "SymbolStore":
        """
        Open the store, recreating it if the backing file is corrupt.

        Corruption is detected when opening the file or by
        ``PRAGMA quick_check``. The corrupt file (and its WAL/SHM companions)
        is deleted and an empty store is created with ``recovered = True``.

        Raises:
            StoreCorruptionError: If the store cannot be recreated either
        """
        store = None
        try:
            store = cls(path)
            store._verify()
            return store
        except sqlite3.DatabaseError as e:
            logger.warning(f"Symbol store at {path} is unusable ({e}); recreating it")
            if store is not None:
                store.close()

        for suffix in ("", "-wal", "-shm"):
            Path(f"{path}{suffix}").unlink(missing_ok=True)

        try:
            store = cls(path)
        except sqlite3.DatabaseError as e:
            raise StoreCorruptionError(f"Could not recreate symbol store at {path}: {e}") from e
        store.recovered = True
        return store

    def _connect(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            # isolation_level=None: transactions are issued explicitly
            conn = sqlite3.connect(str(self.path), isolation_level=None, check_same_thread=False,
                                   timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
            with self._connections_lock:
                self._prune_connections()
                self._connections.append((threading.current_thread(), conn))
        return conn

    def _prune_connections(self) -> None:
        alive = []
        for thread, conn in self._connections:
            if thread.is_alive():
                alive.append((thread, conn))
            else:
                conn.close()
        if len(alive) < len(self._connections):
            logger.debug(f"Closed {len(self._connections) - len(alive)} connection(s) of finished threads")
        self._connections = alive

    def _initialize(self) -> None:
        with self._write_lock:
            conn = self._connect()
            conn.executescript(SCHEMA_SQL)

    def _verify(self) -> None:
        result = self._connect().execute("PRAGMA quick_check").fetchone()
        if result is None or result[0] != "ok":
            raise sqlite3.DatabaseError(f"quick_check failed: {result[0] if result else 'no result'}")

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for _, conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized write transaction; rolls back on any exception."""
        with self._write_lock:
            conn = self._connect()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # =========================================================================
    # Writes
    # =========================================================================

    def _insert_rows(self, conn: sqlite3.Connection, symbols: Sequence[Symbol]) -> int:
        conn.executemany(INSERT_SQL, (symbol_to_row(s) for s in symbols))
        return len(symbols)

    def add_symbol(self, symbol: Symbol) -> None:
        """Insert one symbol. Duplicates of (name, kind, model) are allowed."""
        with self.transaction() as conn:
            self._insert_rows(conn, [symbol])

    def add_symbols(self, symbols: Sequence[Symbol]) -> int:
        """Insert many symbols in one transaction; returns the count."""
        with self.transaction() as conn:
            return self._insert_rows(conn, symbols)

    def clear(self, model: Optional[str] = None) -> int:
        """
        Remove all symbols, or only those of ``model``.

        Returns:
            Number of symbols removed
        """
        with self.transaction() as conn:
            if model is None:
                cursor = conn.execute("DELETE FROM symbols")
            else:
                cursor = conn.execute("DELETE FROM symbols WHERE model = ?", (model,))
            removed = cursor.rowcount
        logger.info(f"Cleared {removed} symbols" + (f" of model {model}" if model else ""))
        return removed

    def discover_files(self, root: Path, models: Optional[Sequence[str]] = None,
                       parser: Optional[IParser] = None) -> Tuple[List[str], List[Tuple[Path, str]]]:
        """
        Find the model directories and metadata files of an indexing pass.

        Args:
            root: Metadata root containing one directory per model
            models: Model names to index; all sub-directories when empty
            parser: Parser deciding which files are supported

        Returns:
            Tuple of (model names, [(file path, model name), ...])

        Raises:
            IndexingError: If the root or a requested model directory is missing
        """
        if not root.is_dir():
            raise IndexingError(f"Metadata root is not a directory: {root}")
        parser = parser or MetadataParser()

        if models:
            model_dirs = []
            for name in models:
                model_dir = root / name
                if not model_dir.is_dir():
                    raise IndexingError(f"Model directory not found: {model_dir}")
                model_dirs.append(model_dir)
        else:
            model_dirs = sorted(p for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))

        files: List[Tuple[Path, str]] = []
        for model_dir in model_dirs:
            for category_dir in sorted(model_dir.iterdir()):
                if not category_dir.is_dir() or category_dir.name.lower() not in CATEGORY_DIRS:
                    continue
                for path in sorted(category_dir.iterdir()):
                    if path.is_file() and parser.can_parse(str(path)):
                        files.append((path, model_dir.name))
        return [d.name for d in model_dirs], files

    def bulk_index(
        self,
        root_path: Union[str, Path],
        models: Optional[Sequence[str]] = None,
        parser: Optional[IParser] = None,
        max_workers: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> IndexStats:
        """
        Index the metadata of one or more models in a single pass.

        Files are parsed in parallel; a file that fails to parse is counted
        in the returned stats and skipped. The write phase then runs in ONE
        transaction that deletes the existing symbols of every indexed model
        and inserts the new ones.

        Args:
            root_path: Metadata root directory
            models: Model names to index (all model directories when empty)
            parser: IParser used for every file (MetadataParser by default)
            max_workers: Parser thread count
            progress_callback: Called with (event_type, data). Event types:
                'files_found', 'file_parsed', 'parse_error', 'writing', 'complete'

        Returns:
            IndexStats of the pass

        Raises:
            IndexingError: If the root is missing or the write phase fails.
                After a write failure the store keeps its prior state.
        """
        start_time = time.time()
        root = Path(root_path)
        model_names, files = self.discover_files(root, models, parser)

        def emit(event_type: str, data: Dict[str, Any]) -> None:
            if progress_callback:
                progress_callback(event_type, data)

        emit("files_found", {"total": len(files), "models": model_names})
        logger.info(f"Indexing {len(files)} metadata files from {len(model_names)} model(s) under {root}")

        factory = ThreadLocalParserFactory(lambda: parser) if parser else ThreadLocalParserFactory()
        symbols, errors = parallel_parse_files(
            files,
            max_workers=max_workers,
            progress_callback=progress_callback,
            parser_factory=factory,
        )
        for filepath, error in errors:
            logger.warning(f"Skipped {filepath}: {error}")

        emit("writing", {"symbols": len(symbols)})
        try:
            with self.transaction() as conn:
                for model in model_names:
                    conn.execute("DELETE FROM symbols WHERE model = ?", (model,))
                inserted = self._insert_rows(conn, symbols)
        except sqlite3.Error as e:
            logger.error(f"Indexing write phase failed, rolled back: {e}")
            raise IndexingError(f"Failed to write symbols for {', '.join(model_names)}: {e}") from e

        stats = IndexStats(
            models=model_names,
            files_parsed=len(files),
            symbols_indexed=inserted,
            parse_errors=len(errors),
            duration_seconds=time.time() - start_time,
            errors=errors[:MAX_REPORTED_ERRORS],
        )
        logger.info(
            f"Indexed {stats.symbols_indexed} symbols from {stats.files_parsed} files "
            f"in {stats.duration_seconds:.1f}s ({stats.parse_errors} skipped)"
        )
        emit("complete", stats.to_dict())
        return stats

    # =========================================================================
    # Reads
    # =========================================================================

    def fetch_rows(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        return self._connect().execute(sql, tuple(params)).fetchall()

    def fetch_symbols(self, sql: str, params: Sequence[Any] = ()) -> List[Symbol]:
        """Run a SELECT over ``symbols`` columns and map the rows to Symbols."""
        return [row_to_symbol(row) for row in self.fetch_rows(sql, params)]

    def get_by_name(self, name: str, kind: Optional[SymbolKind] = None) -> Optional[Symbol]:
        """First symbol with exactly this name (in insertion order), or None."""
        sql = "SELECT * FROM symbols WHERE name = ?"
        params: List[Any] = [name]
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        symbols = self.fetch_symbols(sql + " ORDER BY id, name LIMIT 1", params)
        return symbols[0] if symbols else None

    def get_children(self, parent_name: str, kind: SymbolKind) -> List[Symbol]:
        """Methods of a class or fields/methods of a table, ordered by name."""
        return self.fetch_symbols(
            "SELECT * FROM symbols WHERE parent = ? AND kind = ? ORDER BY name, id",
            (parent_name, kind.value),
        )

    def count(self) -> int:
        return self.fetch_rows("SELECT COUNT(*) FROM symbols")[0][0]

    def count_by_kind(self) -> Dict[str, int]:
        rows = self.fetch_rows("SELECT kind, COUNT(*) AS n FROM symbols GROUP BY kind ORDER BY kind")
        return {row["kind"]: row["n"] for row in rows}

    def models(self) -> List[str]:
        return [row[0] for row in self.fetch_rows("SELECT DISTINCT model FROM symbols ORDER BY model")]

    def all_names(self, limit: Optional[int] = None, kinds: KindFilter = None) -> List[str]:
        """Distinct symbol names, most frequently used first."""
        clause, params = kind_clause(kinds)
        sql = (
            "SELECT name, MAX(usage_frequency) AS freq FROM symbols WHERE 1=1" + clause +
            " GROUP BY name ORDER BY freq DESC, name"
        )
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        return [row["name"] for row in self.fetch_rows(sql, params)]

    def iter_symbols(self, kinds: KindFilter = None) -> Iterator[Symbol]:
        """Yield every stored symbol (optionally of some kinds) in insertion order."""
        clause, params = kind_clause(kinds)
        cursor = self._connect().execute(f"SELECT * FROM symbols WHERE 1=1{clause} ORDER BY id", params)
        for row in cursor:
            yield row_to_symbol(row)

    def find_by_name_fragment(self, fragment: str, kinds: KindFilter = None,
                              limit: int = 50) -> List[Symbol]:
        """Symbols whose name contains ``fragment`` (case-insensitive)."""
        clause, params = kind_clause(kinds)
        return self.fetch_symbols(
            f"SELECT * FROM symbols WHERE name LIKE ? ESCAPE '\\'{clause} "
            f"ORDER BY usage_frequency DESC, name COLLATE NOCASE, id LIMIT ?",
            [f"%{escape_like(fragment)}%", *params, limit],
        )

    def search_in_models(self, fragment: str, model_prefix: str, limit: int = 20) -> List[Symbol]:
        """Symbols whose name contains ``fragment`` in models starting with ``model_prefix``."""
        return self.fetch_symbols(
            "SELECT * FROM symbols WHERE name LIKE ? ESCAPE '\\' AND model LIKE ? ESCAPE '\\' "
            "ORDER BY name COLLATE NOCASE, id LIMIT ?",
            (f"%{escape_like(fragment)}%", f"{escape_like(model_prefix)}%", limit),
        )

    def fts_count(self) -> int:
        """Rows visible through the full-text projection."""
        return self.fetch_rows("SELECT COUNT(*) FROM symbols_fts")[0][0]

    def integrity_check(self) -> bool:
        """Run the FTS5 integrity check against the base table."""
        try:
            self._connect().execute("INSERT INTO symbols_fts(symbols_fts) VALUES ('integrity-check')")
        except sqlite3.DatabaseError as e:
            logger.warning(f"FTS integrity check failed: {e}")
            return False
        return True


