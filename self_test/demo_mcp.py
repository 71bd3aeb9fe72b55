#!/usr/bin/env python3
"""
Demo script to exercise XPP MCP tools without an MCP client.
Indexes a metadata tree and calls every tool, showing its output.

Usage:
  python self_test/demo_mcp.py [path_to_metadata_root]

If no path provided, creates a temporary sample metadata tree.
Set REDIS_URL to try the result cache; otherwise it is disabled.
"""
import sys
import os
import json
import asyncio
import tempfile
import shutil
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

# Import MCP tools - access underlying functions from FastMCP wrappers
from xpp_mcp.config import IndexConfig
from xpp_mcp.mcp.server import (
    index_metadata as index_metadata_tool,
    search as search_tool,
    batch_search as batch_search_tool,
    get_class_info as get_class_info_tool,
    get_table_info as get_table_info_tool,
    get_symbol as get_symbol_tool,
    class_resource as class_resource_template,
    code_completion as code_completion_tool,
    search_extensions as search_extensions_tool,
    analyze_code_patterns as analyze_code_patterns_tool,
    suggest_missing_methods as suggest_missing_methods_tool,
    find_similar_methods as find_similar_methods_tool,
    get_api_usage_patterns as get_api_usage_patterns_tool,
    get_stats as get_stats_tool,
)
from xpp_mcp.mcp.state import get_state, reset_state

# Get underlying functions
index_metadata = index_metadata_tool.fn
search = search_tool.fn
batch_search = batch_search_tool.fn
get_class_info = get_class_info_tool.fn
get_table_info = get_table_info_tool.fn
get_symbol = get_symbol_tool.fn
class_resource = class_resource_template.fn
code_completion = code_completion_tool.fn
search_extensions = search_extensions_tool.fn
analyze_code_patterns = analyze_code_patterns_tool.fn
suggest_missing_methods = suggest_missing_methods_tool.fn
find_similar_methods = find_similar_methods_tool.fn
get_api_usage_patterns = get_api_usage_patterns_tool.fn
get_stats = get_stats_tool.fn

console = Console()


def _method(name: str, source: str) -> dict:
    return {"name": name, "source": source}


def create_sample_metadata(base_path: Path) -> Path:
    """Create a small metadata tree with a standard and a custom model."""
    root = base_path / "metadata"
    std = root / "ApplicationSuite"
    (std / "classes").mkdir(parents=True, exist_ok=True)
    (std / "tables").mkdir(parents=True, exist_ok=True)

    (std / "classes" / "CustHelper.json").write_text(json.dumps({
        "name": "CustHelper",
        "description": "Helper methods for customer records",
        "methods": [
            _method("findByAccount",
                    "public static CustTable findByAccount(CustAccount _accountNum)\n{\n"
                    "    return CustTable::find(_accountNum);\n}"),
            _method("init", "public void init()\n{\n}"),
            _method("updateDimensions",
                    "public void updateDimensions(CustTable _custTable)\n{\n"
                    "    DimensionAttributeValueSetStorage storage = new DimensionAttributeValueSetStorage();\n"
                    "    storage.addItem(_custTable.DefaultDimension);\n"
                    "    storage.save();\n}"),
        ],
    }, indent=2))

    (std / "classes" / "VendHelper.json").write_text(json.dumps({
        "name": "VendHelper",
        "methods": [
            _method("findByAccount",
                    "public static VendTable findByAccount(VendAccount _accountNum)\n{\n"
                    "    return VendTable::find(_accountNum);\n}"),
            _method("init", "public void init()\n{\n}"),
            _method("validate", "public boolean validate()\n{\n    return true;\n}"),
        ],
    }, indent=2))

    (std / "tables" / "CustTable.json").write_text(json.dumps({
        "name": "CustTable",
        "label": "Customers",
        "tableGroup": "Main",
        "fields": [
            {"name": "AccountNum", "extendedDataType": "CustAccount", "label": "Customer account"},
            {"name": "CustGroup", "extendedDataType": "CustGroupId"},
        ],
        "methods": [
            _method("find",
                    "public static CustTable find(CustAccount _accountNum)\n{\n"
                    "    CustTable custTable;\n"
                    "    select firstonly custTable where custTable.AccountNum == _accountNum;\n"
                    "    return custTable;\n}"),
            _method("validateWrite", "public boolean validateWrite()\n{\n    return super();\n}"),
        ],
    }, indent=2))

    custom = root / "ContosoCore" / "AxClass"
    custom.mkdir(parents=True, exist_ok=True)
    (custom / "ContosoCustHelper.xml").write_text("""<?xml version="1.0" encoding="utf-8"?>
<AxClass xmlns:i="http://www.w3.org/2001/XMLSchema-instance">
  <Name>ContosoCustHelper</Name>
  <SourceCode>
    <Declaration><![CDATA[
public class ContosoCustHelper
{
}
]]></Declaration>
    <Methods>
      <Method>
        <Name>init</Name>
        <Source><![CDATA[
public void init()
{
}
]]></Source>
      </Method>
    </Methods>
  </SourceCode>
</AxClass>
""")
    return root


def format_json(data: dict) -> str:
    """Format dict as JSON, leaving out the markdown rendering."""
    return json.dumps({k: v for k, v in data.items() if k != "text"}, indent=2, default=str)


def print_tool_call(name: str, params: dict = None):
    """Print a tool call header."""
    console.print(f"\n[bold cyan]>>> Calling:[/bold cyan] [yellow]{name}[/yellow]")
    if params:
        console.print(Panel(
            Syntax(json.dumps(params, indent=2), "json", theme="monokai"),
            title="Parameters",
            border_style="dim"
        ))


def print_result(result: dict):
    """Print a tool result: markdown if the tool rendered some, JSON otherwise."""
    if "text" in result:
        console.print(Panel(Markdown(result["text"]), title="Result", border_style="green"))
    else:
        console.print(Panel(
            Syntax(format_json(result), "json", theme="monokai"),
            title="Result",
            border_style="green"
        ))


def call(name: str, fn, **params) -> dict:
    print_tool_call(name, params)
    result = fn(**params)
    print_result(result)
    return result


def run_demo(metadata_root: Path, db_path: Path):
    """Run the full demo sequence."""

    console.print(Panel.fit(
        "[bold]XPP MCP Demo[/bold]\n"
        "Testing all MCP tools with real output",
        border_style="blue"
    ))
    console.print(f"\n[bold]Metadata root:[/bold] {metadata_root}")
    console.print(f"[bold]Symbol store:[/bold] {db_path}\n")

    redis_url = os.environ.get("REDIS_URL")
    get_state().config = IndexConfig(
        db_path=db_path,
        metadata_path=metadata_root,
        custom_models=["Contoso*"],
        redis_url=redis_url or "redis://localhost:6379",
        redis_enabled=bool(redis_url),
    )

    # 1. index_metadata
    console.rule("[bold magenta]1. index_metadata[/bold magenta]")
    print_tool_call("index_metadata", {"path": str(metadata_root)})
    # index_metadata is async, so we run it with asyncio
    result = asyncio.run(index_metadata(path=str(metadata_root)))
    console.print(result["message"])

    # 2. get_stats
    console.rule("[bold magenta]2. get_stats[/bold magenta]")
    print_tool_call("get_stats")
    stats = get_stats()
    table = Table(title="Symbols by kind")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", style="green")
    for kind, count in sorted(stats["by_kind"].items()):
        table.add_row(kind, str(count))
    console.print(table)

    # 3. search, including a typo to show suggestions
    console.rule("[bold magenta]3. search[/bold magenta]")
    for query in ("CustHelper", "CustHelper", "DimensionAtribute", "find*"):
        result = call("search", search, query=query, limit=5)
        if result["from_cache"]:
            console.print("[yellow]Served from cache[/yellow]")

    # 4. batch_search
    console.rule("[bold magenta]4. batch_search[/bold magenta]")
    call("batch_search", batch_search, queries=[
        {"query": "CustTable", "type": "table"},
        {"query": "init", "type": "method", "limit": 3},
    ])

    # 5. structure
    console.rule("[bold magenta]5. structure tools and the class resource[/bold magenta]")
    call("get_class_info", get_class_info, class_name="CustHelper")
    call("get_table_info", get_table_info, table_name="CustTable")
    call("get_symbol", get_symbol, name="validateWrite", type="method")
    call("code_completion", code_completion, class_name="CustTable", prefix="val")

    print_tool_call("resource xpp://class/CustHelper")
    console.print(Panel(Markdown(class_resource(class_name="CustHelper")), title="Resource", border_style="green"))

    # 6. custom extensions
    console.rule("[bold magenta]6. search_extensions[/bold magenta]")
    call("search_extensions", search_extensions, query="Cust")

    # 7. pattern analysis
    console.rule("[bold magenta]7. pattern analysis[/bold magenta]")
    call("analyze_code_patterns", analyze_code_patterns, scenario="customer helper")
    call("suggest_missing_methods", suggest_missing_methods, class_name="CustHelper")
    call("find_similar_methods", find_similar_methods, method_name="findByAccount", class_name="CustHelper")
    call("get_api_usage_patterns", get_api_usage_patterns, api_name="DimensionAttributeValueSetStorage")

    # 8. reopen the store from disk
    console.rule("[bold magenta]8. reopen[/bold magenta]")
    config = get_state().config
    reset_state()
    get_state().config = config
    console.print("[yellow]State cleared, reopening the existing store[/yellow]")
    print_tool_call("get_stats")
    print_result(get_stats())

    console.print(Panel.fit(
        "[bold green]Demo Complete![/bold green]\n\n"
        "All 13 MCP tools and the class resource exercised.",
        border_style="green"
    ))


def main():
    """Main entry point."""
    temp_dir = tempfile.mkdtemp(prefix="xpp_mcp_demo_")

    try:
        if len(sys.argv) > 1:
            metadata_root = Path(sys.argv[1]).resolve()
            if not metadata_root.is_dir():
                console.print(f"[red]Error: Not a directory: {metadata_root}[/red]")
                sys.exit(1)
        else:
            metadata_root = create_sample_metadata(Path(temp_dir))
            console.print(f"[dim]Created temporary sample metadata at: {metadata_root}[/dim]")

        run_demo(metadata_root, Path(temp_dir) / "xpp-metadata.db")

    except KeyboardInterrupt:
        console.print("\n[yellow]Demo interrupted[/yellow]")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise
    finally:
        reset_state()
        shutil.rmtree(temp_dir, ignore_errors=True)
        console.print("[dim]Cleaned up temporary files[/dim]")


if __name__ == "__main__":
    main()
