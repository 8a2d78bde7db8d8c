"""Memoria test configuration."""
import pytest
import pytest_asyncio

from memoria.config import MemoriaConfig
from memoria.database import Database
from memoria.fingerprint import reset_fingerprint_cache
from memoria.service import MemoryService
from memoria.vector_store import FingerprintStore

_MEMORIA_ENV = (
    "MEMORIA_DB_URL",
    "MEMORIA_DIMENSIONS",
    "MEMORIA_RELEVANCE_THRESHOLD",
    "MEMORIA_SEMANTIC_THRESHOLD",
    "MEMORIA_SEARCH_THRESHOLD",
    "MEMORIA_LOG_LEVEL",
)


@pytest.fixture
def tmp_memoria_home(tmp_path, monkeypatch):
    """Temporary MEMORIA_HOME with background work tuned for tests."""
    home = tmp_path / ".memoria"
    home.mkdir()
    for name in _MEMORIA_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MEMORIA_HOME", str(home))
    # No inter-task pause and no periodic maintenance in tests
    monkeypatch.setenv("MEMORIA_TASK_DELAY", "0")
    monkeypatch.setenv("MEMORIA_MAINTENANCE_INTERVAL", "0")
    return home


@pytest.fixture(autouse=True)
def _reset_fingerprints():
    reset_fingerprint_cache()
    yield
    reset_fingerprint_cache()


@pytest.fixture
def config(tmp_memoria_home):
    return MemoriaConfig(
        home=tmp_memoria_home,
        db_path=tmp_memoria_home / "test.db",
        task_delay_s=0.0,
        maintenance_interval_min=0,
    )


@pytest_asyncio.fixture
async def db(config):
    """Connected database with schema and (when sqlite-vec loads) the vector index."""
    database = Database(config)
    await database.connect()
    await database.init_schema()
    await database.create_vector_index()
    yield database
    await database.close()


@pytest.fixture
def store(db):
    return FingerprintStore(db)


@pytest_asyncio.fixture
async def service(config):
    """Started MemoryService on a temporary database file."""
    svc = MemoryService(config)
    await svc.start(schedule_maintenance=False)
    yield svc
    await svc.close()
