"""
MCP Server for XPP MCP - X++ metadata search and code-pattern analysis.

This module exposes the IndexService operations through the Model Context
Protocol using stdio transport. Every tool returns a dict holding the
structured result plus a markdown ``text`` rendering.

Usage:
    xpp-mcp  # Run as stdio MCP server

Tools:
    - index_metadata: Index extracted metadata into the symbol store
    - search / batch_search: Hybrid symbol search with suggestions
    - get_class_info / get_table_info: Structure of a class or table
    - get_symbol: One symbol by exact name
    - code_completion: Members of a class or table by prefix
    - search_extensions: Search custom (ISV) models only
    - analyze_code_patterns / suggest_missing_methods /
      find_similar_methods / get_api_usage_patterns: Pattern analysis
    - get_stats: Store and cache statistics

Resources:
    - xpp://class/{class_name}: Class structure as markdown
"""

from typing import Optional, List, Dict, Any, Annotated, Callable
from pathlib import Path
import asyncio
import logging

from fastmcp import FastMCP, Context
from fastmcp.exceptions import ResourceError, ToolError
from pydantic import BaseModel, Field

from xpp_mcp.core.exceptions import InvalidArgumentError, XppMcpException
from xpp_mcp.core.models import SearchRequest, SymbolKind
from xpp_mcp.mcp import formatting
from xpp_mcp.mcp.state import get_state
from xpp_mcp.search.engine import parse_kinds

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP(
    name="XPP-MCP",
    instructions=(
        "X++ (Dynamics 365 F&O) metadata search, structure lookup and code-pattern "
        "analysis. Call index_metadata once, then search before writing X++ code."
    )
)


class SearchQuery(BaseModel):
    """One query of a batch search."""
    query: str = Field(description="Search query (class name, method name, etc.)")
    type: str = Field(default="all", description="Kind filter: class, table, method, field, enum or all")
    limit: int = Field(default=10, description="Maximum results for this query")
    workspace_path: Optional[str] = Field(default=None, description="Optional workspace path to include")


def _service():
    try:
        return get_state().get_service()
    except Exception as e:
        raise ToolError(f"XPP index unavailable: {e}. Check DB_PATH and the server configuration.")


def _kinds(value: Optional[str]):
    try:
        return parse_kinds([value]) if value else None
    except ValueError as e:
        raise ToolError(f"{e}. Use one of: class, table, method, field, enum, all.")


def _fail(action: str, error: Exception, next_step: str) -> ToolError:
    """Convert a failure into a ToolError that tells the caller what to do next."""
    if isinstance(error, InvalidArgumentError):
        return ToolError(f"{error}. {next_step}")
    if not isinstance(error, XppMcpException):
        logger.exception(f"Unexpected error while trying to {action}")
    return ToolError(f"Failed to {action}: {error}. {next_step}")


def _create_index_progress_callback(ctx: Context, loop) -> Callable:
    """Create a progress callback that reports indexing progress to MCP client."""
    def callback(event_type: str, data: dict):
        progress = 0
        message = ""

        if event_type == "files_found":
            progress = 5
            message = f"Found {data['total']} metadata files in {len(data['models'])} model(s)..."
        elif event_type == "file_parsed":
            # Scale parsing progress (5-90%)
            pct = data['index'] / data['total'] if data['total'] > 0 else 1
            progress = 5 + int(pct * 85)
            message = f"Parsing... ({data['index']}/{data['total']} files)"
        elif event_type == "writing":
            progress = 92
            message = f"Writing {data['symbols']} symbols..."
        elif event_type == "complete":
            progress = 100
            message = "Indexing complete!"

        if progress > 0:
            asyncio.run_coroutine_threadsafe(
                ctx.report_progress(progress, 100, message),
                loop
            )
    return callback


@mcp.tool(
    name="index_metadata",
    description="""Index extracted X++ metadata (classes, tables, enums) into the symbol store.

Each listed model is replaced atomically: its previous symbols are deleted and the
new ones inserted in one transaction. All cached results are discarded afterwards.

Expected layout: <path>/<Model>/classes|tables|enums/<Name>.json (or AxClass/AxTable/AxEnum XML)."""
)
async def index_metadata(
    path: Annotated[
        Optional[str],
        Field(description="Metadata root directory. Defaults to the METADATA_PATH setting.")
    ] = None,
    models: Annotated[
        Optional[List[str]],
        Field(description="Model names to index (e.g., ['ContosoCore']). Defaults to every model directory.")
    ] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """Index metadata with progress reporting."""
    service = _service()

    if path is not None:
        root = Path(path).resolve()
        if not root.exists():
            raise ToolError(f"Path does not exist: {root}")
        if not root.is_dir():
            raise ToolError(f"Path is not a directory: {root}")
        path = str(root)

    progress_callback = None
    if ctx:
        loop = asyncio.get_running_loop()
        progress_callback = _create_index_progress_callback(ctx, loop)

    try:
        stats = await asyncio.to_thread(service.reindex, path, models, progress_callback)
    except Exception as e:
        raise _fail("index metadata", e, "Check the metadata path and model names.")

    return {
        "success": True,
        "message": formatting.format_index_stats(stats),
        "stats": stats.to_dict(),
    }


@mcp.tool(
    name="search",
    description="Search X++ classes, tables, methods, fields and enums by name, signature, tags and comments. "
                "Returns suggestions (typo fixes, broader/narrower queries, related terms) when nothing matches. "
                "A trailing * requests a prefix search."
)
def search(
    query: Annotated[str, Field(description="Search query (class name, method name, etc.)")],
    type: Annotated[
        str,
        Field(description="Filter by kind: class, table, method, field, enum or all (comma-separated allowed)")
    ] = "all",
    limit: Annotated[int, Field(description="Maximum results to return (default: 20)")] = 20,
    workspace_path: Annotated[
        Optional[str],
        Field(description="Optional workspace path whose local metadata files are searched as well")
    ] = None
) -> Dict[str, Any]:
    """Hybrid search with suggestions."""
    service = _service()
    kinds = _kinds(type)
    try:
        response = service.search(query, kinds, limit, workspace_path)
    except Exception as e:
        raise _fail("search", e, "Simplify the query or remove special characters.")

    result = response.to_dict()
    result["text"] = formatting.format_search(response)
    return result


@mcp.tool(
    name="batch_search",
    description="Run up to 10 independent searches in parallel in one call. "
                "Each result reports its own success or error."
)
def batch_search(
    queries: Annotated[
        List[SearchQuery],
        Field(description="Search queries to execute in parallel (max 10)")
    ]
) -> Dict[str, Any]:
    """Parallel search."""
    service = _service()
    queries = [SearchQuery.model_validate(q) if isinstance(q, dict) else q for q in queries]
    requests = [
        SearchRequest(q.query, tuple(_kinds(q.type) or ()) or None, q.limit, q.workspace_path)
        for q in queries
    ]
    try:
        items = service.batch_search(requests)
    except Exception as e:
        raise _fail("run batch search", e, "Send between 1 and 10 queries.")

    return {
        "results": [item.to_dict() for item in items],
        "succeeded": sum(1 for item in items if item.success),
        "text": formatting.format_batch(items),
    }


@mcp.tool(
    name="get_class_info",
    description="Get the structure of an X++ class: base class, interfaces, pattern, tags and all method signatures."
)
def get_class_info(
    class_name: Annotated[str, Field(description="Exact name of the X++ class")]
) -> Dict[str, Any]:
    """Class structure."""
    service = _service()
    try:
        details = service.get_class_info(class_name)
        similar = service.similar_names(class_name, [SymbolKind.CLASS]) if details is None else []
    except Exception as e:
        raise _fail("get class info", e, "Pass the exact class name.")

    if details is None:
        return {
            "found": False,
            "similar": similar,
            "text": formatting.format_not_found("Class", class_name, similar, "class"),
        }
    return {"found": True, **details.to_dict(), "text": formatting.format_details(details)}


@mcp.tool(
    name="get_table_info",
    description="Get the structure of an X++ table: label, fields with their types and table methods."
)
def get_table_info(
    table_name: Annotated[str, Field(description="Exact name of the X++ table")]
) -> Dict[str, Any]:
    """Table structure."""
    service = _service()
    try:
        details = service.get_table_info(table_name)
        similar = service.similar_names(table_name, [SymbolKind.TABLE]) if details is None else []
    except Exception as e:
        raise _fail("get table info", e, "Pass the exact table name.")

    if details is None:
        return {
            "found": False,
            "similar": similar,
            "text": formatting.format_not_found("Table", table_name, similar, "table"),
        }
    return {"found": True, **details.to_dict(), "text": formatting.format_details(details)}


@mcp.tool(
    name="get_symbol",
    description="Look up one symbol (class, table, method, field or enum) by exact name. "
                "Methods and fields are matched by their own name, not Parent.name."
)
def get_symbol(
    name: Annotated[str, Field(description="Exact symbol name")],
    type: Annotated[
        str,
        Field(description="Kind of the symbol: class, table, method, field, enum or all")
    ] = "all"
) -> Dict[str, Any]:
    """Single symbol lookup."""
    service = _service()
    kinds = _kinds(type)
    if kinds and len(kinds) > 1:
        raise ToolError("get_symbol takes a single type. Use one of: class, table, method, field, enum, all.")
    kind = kinds[0] if kinds else None
    try:
        symbol = service.get_symbol(name, kind)
        similar = service.similar_names(name, kinds) if symbol is None else []
    except Exception as e:
        raise _fail("get symbol", e, "Pass the exact symbol name.")

    if symbol is None:
        return {
            "found": False,
            "similar": similar,
            "text": formatting.format_not_found("Symbol", name, similar, kind.value if kind else None),
        }
    return {"found": True, "symbol": symbol.to_dict(), "text": formatting.format_symbol(symbol)}


@mcp.resource(
    "xpp://class/{class_name}",
    name="class_info",
    description="Structure of an X++ class as markdown",
    mime_type="text/markdown"
)
def class_resource(class_name: str) -> str:
    """Class structure as a readable resource."""
    try:
        details = get_state().get_service().get_class_info(class_name)
    except Exception as e:
        logger.exception(f"Failed to read class resource {class_name}")
        raise ResourceError(f"Failed to read class {class_name}: {e}")
    if details is None:
        raise ResourceError(f'Class "{class_name}" not found')
    return formatting.format_details(details)


@mcp.tool(
    name="code_completion",
    description="List methods and fields of a class or table, optionally filtered by a name prefix."
)
def code_completion(
    class_name: Annotated[str, Field(description="Class or table name")],
    prefix: Annotated[str, Field(description="Method/field name prefix to filter (case-insensitive)")] = ""
) -> Dict[str, Any]:
    """Member completion."""
    service = _service()
    try:
        members = service.get_completions(class_name, prefix)
    except Exception as e:
        raise _fail("get completions", e, "Pass a class or table name.")

    return {
        "completions": [
            {"label": m.name, "kind": m.kind.value, "detail": m.signature}
            for m in members
        ],
        "text": formatting.format_completions(class_name, prefix, members),
    }


@mcp.tool(
    name="search_extensions",
    description="Search only custom extension models (configured via CUSTOM_MODELS / EXTENSION_PREFIX, "
                "or a model name prefix such as 'ISV_')."
)
def search_extensions(
    query: Annotated[str, Field(description="Name fragment to search for")],
    prefix: Annotated[
        Optional[str],
        Field(description="Model name prefix filter (e.g., 'ISV_', 'Contoso')")
    ] = None,
    limit: Annotated[int, Field(description="Maximum results to return (default: 20)")] = 20
) -> Dict[str, Any]:
    """Custom extension search."""
    service = _service()
    try:
        symbols = service.search_extensions(query, prefix, limit)
    except Exception as e:
        raise _fail("search extensions", e, "Pass a name fragment to search for.")

    return {
        "symbols": [s.to_dict() for s in symbols],
        "text": formatting.format_extensions(query, prefix, symbols),
    }


@mcp.tool(
    name="analyze_code_patterns",
    description="Analyze the classes of a scenario (e.g., 'financial dimensions', 'sales order validation'): "
                "common roles, methods and dependencies, with example classes."
)
def analyze_code_patterns(
    scenario: Annotated[str, Field(description="Scenario or domain to analyze")],
    class_filter: Annotated[
        Optional[str],
        Field(description="Only analyze classes whose name contains this (e.g., 'Helper')")
    ] = None,
    limit: Annotated[int, Field(description="Maximum number of classes to analyze (default: 20)")] = 20
) -> Dict[str, Any]:
    """Scenario pattern analysis."""
    service = _service()
    try:
        analysis = service.analyze_patterns(scenario, class_filter, limit)
    except Exception as e:
        raise _fail("analyze patterns", e, "Describe the scenario in a few words.")

    return {**analysis.to_dict(), "text": formatting.format_pattern_analysis(analysis)}


@mcp.tool(
    name="suggest_missing_methods",
    description="Suggest methods a class probably lacks, based on what classes with the same pattern "
                "(Helper, Service, Controller, ...) usually implement."
)
def suggest_missing_methods(
    class_name: Annotated[str, Field(description="Exact name of the class to check")],
    limit: Annotated[int, Field(description="Maximum suggestions (default: 10)")] = 10
) -> Dict[str, Any]:
    """Missing-method inference."""
    service = _service()
    try:
        report = service.suggest_missing_methods(class_name, limit)
    except Exception as e:
        raise _fail("suggest missing methods", e, "Pass the exact class name.")

    return {**report.to_dict(), "text": formatting.format_missing_methods(report)}


@mcp.tool(
    name="find_similar_methods",
    description="Find existing methods similar to a method you are about to write, ranked by name "
                "similarity and class context, with signatures and source excerpts."
)
def find_similar_methods(
    method_name: Annotated[str, Field(description="Method name (e.g., 'validateWrite')")],
    class_name: Annotated[
        Optional[str],
        Field(description="Class the method belongs to, used as ranking context")
    ] = None,
    limit: Annotated[int, Field(description="Maximum results (default: 10)")] = 10
) -> Dict[str, Any]:
    """Similar-method retrieval."""
    service = _service()
    try:
        methods = service.find_similar_methods(method_name, class_name, limit)
    except Exception as e:
        raise _fail("find similar methods", e, "Pass a method name.")

    return {
        "methods": [m.to_dict() for m in methods],
        "text": formatting.format_similar_methods(method_name, methods),
    }


@mcp.tool(
    name="get_api_usage_patterns",
    description="Show how an API (class or method) is typically initialized and called across the codebase."
)
def get_api_usage_patterns(
    api_name: Annotated[str, Field(description="Name of the API class or method (e.g., 'DimensionAttributeValueSetStorage')")],
    limit: Annotated[int, Field(description="Maximum referencing methods to analyze (default: 50)")] = 50
) -> Dict[str, Any]:
    """API usage mining."""
    service = _service()
    try:
        report = service.get_api_usage_patterns(api_name, limit)
    except Exception as e:
        raise _fail("get API usage patterns", e, "Pass a class or method name.")

    return {"found": report.found, **report.to_dict(), "text": formatting.format_api_usage(report)}


@mcp.tool(
    name="get_stats",
    description="Get statistics about the symbol store and the result cache."
)
def get_stats() -> Dict[str, Any]:
    """Get index statistics."""
    state = get_state()
    try:
        return state.get_service().stats()
    except Exception as e:
        raise _fail("get statistics", e, "Check DB_PATH and the server logs.")


def main():  # pragma: no cover
    """Run the MCP server."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    mcp.run()


if __name__ == "__main__":
    main()
