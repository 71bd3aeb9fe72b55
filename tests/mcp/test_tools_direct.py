"""
Test MCP tools by calling decorated functions directly.
This simulates what an MCP client does, without the protocol overhead.

Note: FastMCP's @mcp.tool decorator wraps functions into FunctionTool objects.
We access the underlying function via the .fn attribute.
"""
import asyncio
import pytest
from fastmcp.exceptions import ResourceError, ToolError
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
from xpp_mcp.mcp.state import get_state

# Access underlying functions from FastMCP FunctionTool wrappers
index_metadata_fn = index_metadata_tool.fn  # async function
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


def index_metadata(**kwargs):
    """Helper to run async index_metadata function synchronously."""
    return asyncio.run(index_metadata_fn(**kwargs))


@pytest.fixture
def configured(config):
    """State configured for a temporary store, nothing indexed yet."""
    get_state().config = config
    return config


class TestIndexMetadataTool:
    """Test the index_metadata tool - indexes extracted metadata."""

    def test_index_valid_root(self, configured, metadata_root):
        result = index_metadata(path=str(metadata_root))

        assert result["success"] is True
        assert result["stats"]["symbols_indexed"] == 30
        assert result["stats"]["models"] == ["ApplicationSuite", "ContosoCore"]
        assert "Indexed 30 symbols from 10 files" in result["message"]

    def test_index_defaults_to_configured_root(self, configured):
        result = index_metadata(models=["ContosoCore"])

        assert result["stats"]["models"] == ["ContosoCore"]
        assert result["stats"]["files_parsed"] == 3

    def test_index_sets_state(self, configured, metadata_root):
        index_metadata(path=str(metadata_root))

        state = get_state()
        assert state.is_loaded is True
        assert state.service.store.count() == 30

    def test_index_path_not_exists(self, configured):
        with pytest.raises(ToolError, match="Path does not exist"):
            index_metadata(path="/nonexistent/path/12345")

    def test_index_path_is_file(self, configured, tmp_path):
        file = tmp_path / "file.txt"
        file.write_text("content")
        with pytest.raises(ToolError, match="not a directory"):
            index_metadata(path=str(file))

    def test_index_unknown_model(self, configured, metadata_root):
        with pytest.raises(ToolError, match="Model directory not found"):
            index_metadata(path=str(metadata_root), models=["NoSuchModel"])

    def test_store_unavailable(self):
        get_state().config = IndexConfig(db_path=":memory:", redis_enabled=False)
        with pytest.raises(ToolError, match="XPP index unavailable"):
            index_metadata()


class TestSearchTool:
    def test_search_returns_hits_and_text(self, loaded_state):
        result = search(query="CustHelper")

        assert result["hits"][0]["symbol"]["name"] == "CustHelper"
        assert result["from_cache"] is False
        assert result["text"].startswith('# Search: "CustHelper"')

    def test_search_type_filter(self, loaded_state):
        result = search(query="CustTable", type="table")
        assert {h["symbol"]["kind"] for h in result["hits"]} == {"table"}

    def test_search_invalid_type(self, loaded_state):
        with pytest.raises(ToolError, match="Use one of"):
            search(query="CustTable", type="form")

    def test_search_empty_query(self, loaded_state):
        with pytest.raises(ToolError, match="required"):
            search(query="  ")

    def test_search_suggestions_rendered(self, loaded_state):
        result = search(query="DimnesionAttribute")

        assert result["hits"] == []
        assert result["suggestions"][0]["query"] == "DimensionAttribute"
        assert "No symbols found." in result["text"]
        assert "### Did you mean?" in result["text"]


class TestBatchSearchTool:
    def test_batch_accepts_dicts(self, loaded_state):
        result = batch_search(queries=[
            {"query": "CustTable", "type": "table"},
            {"query": "NoYes"},
        ])

        assert result["succeeded"] == 2
        assert [r["query"] for r in result["results"]] == ["CustTable", "NoYes"]
        assert result["text"].startswith("# Batch search: 2/2 succeeded")

    def test_batch_too_many(self, loaded_state):
        with pytest.raises(ToolError, match="at most 10"):
            batch_search(queries=[{"query": f"Cust{i}"} for i in range(11)])


class TestStructureTools:
    def test_class_info(self, loaded_state):
        result = get_class_info(class_name="CustHelper")

        assert result["found"] is True
        assert result["symbol"]["name"] == "CustHelper"
        assert len(result["members"]) == 3
        assert result["text"].startswith("# Class: CustHelper")
        assert "## Methods (3)" in result["text"]

    def test_class_not_found(self, loaded_state):
        result = get_class_info(class_name="NoSuchClass")

        assert result["found"] is False
        assert 'Class "NoSuchClass" not found' in result["text"]
        assert 'search("NoSuc", type="class")' in result["text"]

    def test_class_not_found_lists_close_names(self, loaded_state):
        result = get_class_info(class_name="CustHelp")

        assert result["found"] is False
        assert result["similar"] == ["ContosoCustHelper", "CustHelper"]
        assert result["text"] == 'Class "CustHelp" not found. Did you mean: ContosoCustHelper, CustHelper?'

    def test_get_symbol(self, loaded_state):
        result = get_symbol(name="applyDiscount", type="method")

        assert result["found"] is True
        assert result["symbol"]["parent"] == "ContosoCustHelper"
        assert result["text"].startswith("# Method: ContosoCustHelper.applyDiscount")
        assert "Signature: `real applyDiscount(real _amount, Percent _pct)`" in result["text"]

    def test_get_symbol_not_found(self, loaded_state):
        result = get_symbol(name="NoSuchThing")

        assert result["found"] is False
        assert result["text"] == 'Symbol "NoSuchThing" not found. Try search("NoSuc").'

    def test_get_symbol_single_type_only(self, loaded_state):
        with pytest.raises(ToolError, match="single type"):
            get_symbol(name="CustTable", type="class,table")

    def test_class_resource(self, loaded_state):
        text = class_resource(class_name="CustHelper")

        assert text.startswith("# Class: CustHelper")
        assert "## Methods (3)" in text

    def test_class_resource_not_found(self, loaded_state):
        with pytest.raises(ResourceError, match="not found"):
            class_resource(class_name="NoSuchClass")

    def test_table_info(self, loaded_state):
        result = get_table_info(table_name="CustTable")

        assert result["found"] is True
        assert "## Fields (3)" in result["text"]
        assert "## Methods (2)" in result["text"]

    def test_code_completion(self, loaded_state):
        result = code_completion(class_name="CustTable", prefix="val")

        assert result["completions"] == [{
            "label": "validateWrite",
            "kind": "method",
            "detail": "boolean validateWrite()",
        }]
        assert result["text"].startswith('# Code Completion: CustTable starting with "val"')

    def test_search_extensions(self, loaded_state):
        result = search_extensions(query="Cust")

        assert [s["name"] for s in result["symbols"]] == ["ContosoCustHelper"]

    def test_search_extensions_nothing_found(self, loaded_state):
        result = search_extensions(query="Cust", prefix="ISV_")

        assert result["symbols"] == []
        assert result["text"] == 'No custom extension symbols found matching "Cust" with prefix "ISV_"'


class TestAnalysisTools:
    def test_analyze_code_patterns(self, loaded_state):
        result = analyze_code_patterns(scenario="customer helper")

        assert result["total_matches"] == 5
        assert "## Common methods" in result["text"]

    def test_suggest_missing_methods(self, loaded_state):
        result = suggest_missing_methods(class_name="CustHelper")

        assert result["found"] is True
        assert result["suggestions"][0]["method_name"] == "init"
        assert "- **init**: 3/3 classes (100%)" in result["text"]

    def test_suggest_missing_methods_unknown_class(self, loaded_state):
        result = suggest_missing_methods(class_name="NoSuchClass")

        assert result["found"] is False
        assert result["text"] == 'Class "NoSuchClass" not found'

    def test_find_similar_methods(self, loaded_state):
        result = find_similar_methods(method_name="findByAccount", class_name="CustHelper")

        assert result["methods"][0]["class_name"] == "VendHelper"
        assert "## VendHelper.findByAccount" in result["text"]

    def test_get_api_usage_patterns(self, loaded_state):
        result = get_api_usage_patterns(api_name="DimensionAttributeValueSetStorage")

        assert result["found"] is True
        assert result["usage_count"] == 2
        assert "Calls: addItem -> save" in result["text"]

    def test_get_api_usage_patterns_unknown(self, loaded_state):
        result = get_api_usage_patterns(api_name="NoSuchApi")

        assert result["found"] is False
        assert result["text"] == 'No usages of "NoSuchApi" found'


class TestGetStatsTool:
    """Test the get_stats tool."""

    def test_stats_when_not_indexed(self, configured):
        result = get_stats()

        assert result["loaded"] is False
        assert result["symbols"] == 0

    def test_stats_after_index(self, loaded_state):
        result = get_stats()

        assert result["loaded"] is True
        assert result["symbols"] == 30
        assert result["custom_models"] == ["ContosoCore"]
        assert result["cache"]["enabled"] is False
