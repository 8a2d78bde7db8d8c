"""Environment configuration parsing."""
from pathlib import Path

import pytest

from memoria.config import (
    DEFAULT_RELEVANCE_THRESHOLD,
    DEFAULT_SEARCH_THRESHOLD,
    DEFAULT_SEMANTIC_THRESHOLD,
    MemoriaConfig,
    StorageMode,
    parse_db_url,
)
from memoria.errors import ConfigurationError


def test_defaults(tmp_path):
    config = MemoriaConfig.from_env({"MEMORIA_HOME": str(tmp_path)})
    assert config.mode is StorageMode.PERSISTENT
    assert config.db_path == tmp_path / "memoria.db"
    assert config.dimensions == 128
    assert config.relevance_threshold == DEFAULT_RELEVANCE_THRESHOLD == 0.5
    assert config.semantic_threshold == DEFAULT_SEMANTIC_THRESHOLD == 0.6
    assert config.search_threshold == DEFAULT_SEARCH_THRESHOLD == 0.7
    assert config.log_level == "WARNING"


def test_memory_url_is_ephemeral(tmp_path):
    config = MemoriaConfig.from_env({"MEMORIA_HOME": str(tmp_path), "MEMORIA_DB_URL": ":memory:"})
    assert config.mode is StorageMode.EPHEMERAL
    assert config.database == ":memory:"


def test_file_url(tmp_path):
    path, mode = parse_db_url(f"file:{tmp_path}/x.db", tmp_path)
    assert path == Path(f"{tmp_path}/x.db")
    assert mode is StorageMode.PERSISTENT


def test_file_url_with_slashes(tmp_path):
    path, _ = parse_db_url(f"file://{tmp_path}/y.db", tmp_path)
    assert path == Path(f"{tmp_path}/y.db")


def test_bare_path(tmp_path):
    path, mode = parse_db_url(str(tmp_path / "z.db"), tmp_path)
    assert path == tmp_path / "z.db"
    assert mode is StorageMode.PERSISTENT


@pytest.mark.parametrize("url", ["libsql://db.example.io", "postgres://localhost/memoria"])
def test_remote_schemes_rejected(tmp_path, url):
    with pytest.raises(ConfigurationError, match="Unsupported database URL scheme"):
        MemoriaConfig.from_env({"MEMORIA_HOME": str(tmp_path), "MEMORIA_DB_URL": url})


@pytest.mark.parametrize(
    "name,value",
    [
        ("MEMORIA_DIMENSIONS", "lots"),
        ("MEMORIA_DIMENSIONS", "0"),
        ("MEMORIA_SEARCH_THRESHOLD", "1.5"),
        ("MEMORIA_TASK_DELAY", "-1"),
    ],
)
def test_bad_numbers_rejected(tmp_path, name, value):
    with pytest.raises(ConfigurationError, match=name):
        MemoriaConfig.from_env({"MEMORIA_HOME": str(tmp_path), name: value})


def test_threshold_overrides(tmp_path):
    config = MemoriaConfig.from_env({
        "MEMORIA_HOME": str(tmp_path),
        "MEMORIA_RELEVANCE_THRESHOLD": "0.2",
        "MEMORIA_SEMANTIC_THRESHOLD": "0.3",
        "MEMORIA_SEARCH_THRESHOLD": "0.4",
    })
    assert (config.relevance_threshold, config.semantic_threshold, config.search_threshold) == (0.2, 0.3, 0.4)


def test_unknown_log_level(tmp_path):
    with pytest.raises(ConfigurationError):
        MemoriaConfig.from_env({"MEMORIA_HOME": str(tmp_path), "MEMORIA_LOG_LEVEL": "chatty"})


def test_ephemeral_helper():
    config = MemoriaConfig.ephemeral(dimensions=16)
    assert config.mode is StorageMode.EPHEMERAL
    assert config.dimensions == 16
    assert config.database == ":memory:"
