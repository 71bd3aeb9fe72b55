"""Unit tests for IndexConfig."""
import pytest
from pathlib import Path
from xpp_mcp.config import IndexConfig
from xpp_mcp.core.exceptions import ConfigurationError


class TestFromEnv:
    def test_defaults(self):
        config = IndexConfig.from_env({})

        assert config.db_path == Path("data/xpp-metadata.db")
        assert config.metadata_path is None
        assert config.redis_enabled is True
        assert (config.ttl_short, config.ttl_medium, config.ttl_long) == (1800, 7200, 86400)

    def test_reads_variables(self):
        config = IndexConfig.from_env({
            "DB_PATH": "/tmp/x.db",
            "METADATA_PATH": "/meta",
            "CUSTOM_MODELS": "Contoso*, ISVCore ,",
            "EXTENSION_PREFIX": "ISV_",
            "REDIS_URL": "redis://cache:6380",
            "REDIS_ENABLED": "false",
            "CACHE_TTL_SHORT": "60",
            "XPP_MAX_WORKERS": "3",
        })

        assert config.db_path == Path("/tmp/x.db")
        assert config.metadata_path == Path("/meta")
        assert config.custom_models == ["Contoso*", "ISVCore"]
        assert config.extension_prefix == "ISV_"
        assert config.redis_url == "redis://cache:6380"
        assert config.redis_enabled is False
        assert config.ttl_short == 60
        assert config.max_workers == 3

    def test_invalid_value_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            IndexConfig.from_env({"CACHE_TTL_LONG": "-5"})


class TestCustomModels:
    def test_wildcard_match_is_case_insensitive(self):
        config = IndexConfig(custom_models=["contoso*"])

        assert config.is_custom_model("ContosoCore")
        assert not config.is_custom_model("ApplicationSuite")

    def test_extension_prefix(self):
        config = IndexConfig(extension_prefix="ISV_")

        assert config.is_custom_model("ISV_Payments")
        assert not config.is_custom_model("")

    def test_filter_models(self):
        config = IndexConfig(custom_models=["ContosoCore"])
        models = ["ApplicationSuite", "ContosoCore"]

        assert config.filter_models(models) == ["ContosoCore"]
        assert config.filter_models(models, custom=False) == ["ApplicationSuite"]
