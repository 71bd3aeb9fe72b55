"""Unit tests for IndexService (store + search + analysis + cache)."""
import json

import pytest
from xpp_mcp.cache.symbol_cache import make_key
from xpp_mcp.config import IndexConfig
from xpp_mcp.core.exceptions import IndexingError, InvalidArgumentError
from xpp_mcp.core.models import SearchRequest, SymbolKind
from xpp_mcp.service import MAX_BATCH_QUERIES, IndexService


def _fail(*args, **kwargs):
    raise AssertionError("the store should not be queried")


class TestSearch:
    def test_hits(self, service):
        response = service.search("CustHelper")

        assert response.hits[0].symbol.name == "CustHelper"
        assert response.suggestions == []
        assert response.from_cache is False

    def test_blank_query_rejected(self, service):
        with pytest.raises(InvalidArgumentError):
            service.search("   ")

    def test_typo_suggestion(self, service):
        response = service.search("DimnesionAttribute")

        assert response.hits == []
        assert response.suggestions[0].type == "typo"
        assert response.suggestions[0].query == "DimensionAttribute"

    def test_near_miss_suggests_existing_name(self, service):
        response = service.search("CustHelperz")

        assert response.hits == []
        assert "CustHelper" in [s.query for s in response.suggestions]

    def test_kind_filter(self, service):
        response = service.search("CustTable", kinds=[SymbolKind.TABLE])
        assert {h.symbol.kind for h in response.hits} == {SymbolKind.TABLE}

    def test_workspace_symbols_are_merged(self, service, tmp_path):
        classes = tmp_path / "ws" / "LocalModel" / "classes"
        classes.mkdir(parents=True)
        (classes / "CustHelper.json").write_text(json.dumps({
            "name": "CustHelper",
            "description": "Work in progress",
            "methods": [{"name": "newMethod", "source": "public void newMethod()\n{\n}"}],
        }))

        response = service.search("CustHelper", workspace_path=str(tmp_path / "ws"))

        assert response.hits[0].source == "workspace"
        assert response.hits[0].symbol.model == "LocalModel"
        assert response.hits[0].symbol.description == "Work in progress"


class TestCachedSearch:
    def test_second_search_is_served_from_cache(self, cached_service, monkeypatch):
        first = cached_service.search("CustHelper")
        monkeypatch.setattr(cached_service.engine, "search", _fail)

        second = cached_service.search("CustHelper")

        assert first.from_cache is False
        assert second.from_cache is True
        assert [h.symbol.qualified_name for h in second.hits] == [h.symbol.qualified_name for h in first.hits]

    def test_fuzzy_cache_hit_keeps_requested_query(self, cached_service, monkeypatch):
        cached_service.search("CustHelper")
        monkeypatch.setattr(cached_service.engine, "search", _fail)

        response = cached_service.search("CustHelpr")

        assert response.from_cache is True
        assert response.query == "CustHelpr"
        assert response.hits[0].symbol.name == "CustHelper"

    def test_workspace_searches_are_not_cached(self, cached_service, tmp_path):
        cached_service.search("CustHelper", workspace_path=str(tmp_path))

        assert cached_service.cache.key_count() == 0

    def test_reindex_clears_cache(self, cached_service):
        cached_service.search("CustHelper")
        cached_service.get_class_info("CustHelper")
        assert cached_service.cache.key_count() == 2

        cached_service.reindex(models=["ContosoCore"])

        assert cached_service.cache.key_count() == 0

    def test_analysis_uses_medium_tier(self, cached_service, fake_redis):
        cached_service.suggest_missing_methods("CustHelper")

        key = make_key("missing", "CustHelper", limit=10, normalize=False)
        assert 3600 < fake_redis.ttl(key) <= 7200

    def test_unknown_class_is_not_cached(self, cached_service):
        assert cached_service.get_class_info("NoSuchClass") is None
        assert cached_service.cache.key_count() == 0


class TestBatchSearch:
    def test_results_in_request_order(self, service):
        items = service.batch_search([
            SearchRequest("CustTable"),
            SearchRequest("NoYes"),
            SearchRequest("CustHelper", kinds=(SymbolKind.CLASS,)),
        ])

        assert [item.query for item in items] == ["CustTable", "NoYes", "CustHelper"]
        assert all(item.success for item in items)
        assert items[1].response.hits[0].symbol.name == "NoYes"

    def test_failure_is_isolated(self, service):
        items = service.batch_search([SearchRequest("CustTable"), SearchRequest("  ")])

        assert items[0].success is True
        assert items[1].success is False
        assert "query" in items[1].error

    @pytest.mark.parametrize("count", [0, 11])
    def test_batch_size_limits(self, service, count):
        with pytest.raises(InvalidArgumentError):
            service.batch_search([SearchRequest("CustTable")] * count)

    def test_repeated_batches_keep_connections_bounded(self, service):
        requests = [SearchRequest(f"Cust{i}") for i in range(MAX_BATCH_QUERIES)]

        for _ in range(30):
            service.batch_search(requests)

        # one per batch worker plus the calling thread
        assert len(service.store._connections) <= MAX_BATCH_QUERIES + 1

    def test_close_stops_workers(self, tmp_path, metadata_root):
        svc = IndexService.from_config(IndexConfig(db_path=tmp_path / "batch.db", redis_enabled=False))
        svc.reindex(metadata_root)
        svc.batch_search([SearchRequest("CustTable")])

        svc.close()

        assert svc.store._connections == []
        with pytest.raises(RuntimeError):
            svc.batch_search([SearchRequest("CustTable")])


class TestExtensions:
    def test_configured_custom_models(self, service):
        assert service.custom_models() == ["ContosoCore"]
        assert [s.name for s in service.search_extensions("Cust")] == ["ContosoCustHelper"]

    def test_model_prefix(self, service):
        names = [s.name for s in service.search_extensions("Contoso", prefix="Contoso")]
        assert names == ["ContosoCustHelper", "ContosoSettings", "ContosoStatus"]

    def test_no_custom_models(self, tmp_path, metadata_root):
        svc = IndexService.from_config(IndexConfig(db_path=tmp_path / "other.db", redis_enabled=False))
        try:
            svc.reindex(metadata_root)
            assert svc.search_extensions("Cust") == []
        finally:
            svc.close()


class TestStructure:
    def test_class_info(self, service):
        details = service.get_class_info("CustHelper")

        assert details.symbol.name == "CustHelper"
        assert [m.name for m in details.members] == ["findByAccount", "updateDimensions", "validateCustomer"]

    def test_get_symbol(self, service):
        assert service.get_symbol("NoYes").kind == SymbolKind.ENUM
        assert service.get_symbol("CustTable", SymbolKind.CLASS) is None

    def test_similar_names(self, service):
        assert service.similar_names("CustHelp", [SymbolKind.CLASS]) == ["ContosoCustHelper", "CustHelper"]
        assert service.similar_names("AccountNumTable") == ["AccountNum"]
        assert service.similar_names("NoSuchClass") == []

    def test_similar_names_excludes_the_name_itself(self, service):
        assert "CustTable" not in service.similar_names("CustTable")

    def test_class_info_wrong_kind(self, service):
        assert service.get_class_info("CustTable") is None

    def test_table_info_lists_fields_then_methods(self, service):
        details = service.get_table_info("CustTable")

        assert [m.name for m in details.members] == [
            "AccountNum", "Blocked", "CustGroup", "find", "validateWrite",
        ]

    def test_completions_prefix(self, service):
        assert [m.name for m in service.get_completions("CustTable", "VA")] == ["validateWrite"]

    def test_completions_methods_before_fields(self, service):
        members = service.get_completions("CustTable")
        assert [m.kind for m in members] == [SymbolKind.METHOD] * 2 + [SymbolKind.FIELD] * 3

    def test_completions_unknown_class(self, service):
        assert service.get_completions("NoSuchClass") == []

    def test_blank_name_rejected(self, service):
        with pytest.raises(InvalidArgumentError):
            service.get_table_info("")


class TestAnalysis:
    def test_delegates_to_analyzer(self, service):
        assert service.analyze_patterns("customer helper").total_matches == 5
        assert service.suggest_missing_methods("CustHelper").suggestions[0].method_name == "init"
        assert service.find_similar_methods("findByAccount", "CustHelper")[0].class_name == "VendHelper"
        assert service.get_api_usage_patterns("DimensionAttributeValueSetStorage").usage_count == 2

    def test_limits_are_clamped(self, service):
        report = service.suggest_missing_methods("CustHelper", limit=0)
        assert len(report.suggestions) == 3


class TestIndexing:
    def test_reindex_requires_a_root(self, tmp_path):
        svc = IndexService.from_config(IndexConfig(db_path=tmp_path / "x.db", redis_enabled=False))
        try:
            with pytest.raises(InvalidArgumentError, match="METADATA_PATH"):
                svc.reindex()
        finally:
            svc.close()

    def test_reindex_unknown_model(self, service):
        with pytest.raises(IndexingError):
            service.reindex(models=["NoSuchModel"])
        assert service.store.count() == 30

    def test_reindex_checks_full_text_index(self, service, monkeypatch, caplog):
        monkeypatch.setattr(service.store, "integrity_check", lambda: False)

        service.reindex(models=["ContosoCore"])

        assert "inconsistent" in caplog.text

    def test_graph_rebuilt_after_reindex(self, service):
        before = service.graph
        service.reindex(models=["ContosoCore"])
        assert service.graph is not before

    def test_stats(self, service):
        stats = service.stats()

        assert stats["loaded"] is True
        assert stats["symbols"] == 30
        assert stats["by_kind"]["method"] == 14
        assert stats["models"] == ["ApplicationSuite", "ContosoCore"]
        assert stats["custom_models"] == ["ContosoCore"]
        assert stats["cache"]["enabled"] is False
