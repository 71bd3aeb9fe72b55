import pytest
import fakeredis
from pathlib import Path
from xpp_mcp.cache.symbol_cache import SymbolCache
from xpp_mcp.config import IndexConfig
from xpp_mcp.indexing.symbol_store import SymbolStore
from xpp_mcp.mcp.state import reset_state, get_state
from xpp_mcp.service import IndexService

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def clean_state():
    """Reset MCP state before and after each test."""
    reset_state()
    yield
    reset_state()


@pytest.fixture
def metadata_root():
    """Return path to the static metadata fixture (ApplicationSuite + ContosoCore)."""
    return FIXTURES / "metadata"


@pytest.fixture
def store(tmp_path):
    """An empty symbol store in a temporary directory."""
    s = SymbolStore.open(tmp_path / "xpp.db")
    yield s
    s.close()


@pytest.fixture
def indexed_store(store, metadata_root):
    """A symbol store holding every fixture model."""
    store.bulk_index(metadata_root, max_workers=2)
    return store


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def cache(fake_redis):
    return SymbolCache(fake_redis)


@pytest.fixture
def config(tmp_path, metadata_root):
    return IndexConfig(
        db_path=tmp_path / "xpp.db",
        metadata_path=metadata_root,
        custom_models=["Contoso*"],
        redis_enabled=False,
        max_workers=2,
    )


@pytest.fixture
def service(config):
    """An indexed service without a cache."""
    svc = IndexService.from_config(config)
    svc.reindex()
    yield svc
    svc.close()


@pytest.fixture
def cached_service(config, cache):
    """An indexed service whose results go through a fake Redis."""
    svc = IndexService(config, SymbolStore.open(config.db_path), cache)
    svc.reindex()
    yield svc
    svc.close()


@pytest.fixture
def loaded_state(config):
    """MCP session state pointing at an indexed fixture store."""
    state = get_state()
    state.config = config
    state.get_service().reindex()
    return state
