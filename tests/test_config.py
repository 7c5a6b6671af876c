"""Tests for tidings.core.config — Configuration management."""

import os

import pytest

from tidings.core.config import (
    ClassifierConfig,
    CursorConfig,
    StoreConfig,
    TidingsConfig,
    VectorConfig,
)

_ENV = (
    "TIDINGS_DATA_DIR",
    "TIDINGS_VECTOR_PATH",
    "TIDINGS_TIMEZONE",
    "TIDINGS_EMBEDDING_DIMS",
    "TIDINGS_CLASSIFIER_ENABLED",
    "TIDINGS_CLASSIFIER_URL",
    "TIDINGS_CLASSIFIER_MODEL",
    "TIDINGS_CLASSIFIER_API_KEY",
    "TIDINGS_CLASSIFIER_TIMEOUT",
    "OPENAI_API_KEY",
    "TIDINGS_GMAIL_TOKEN",
    "TIDINGS_GMAIL_MAX_RESULTS",
    "TIDINGS_SEARCH_LIMIT",
    "TIDINGS_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


class TestTidingsConfigDefaults:
    def test_from_env_defaults(self):
        config = TidingsConfig.from_env()
        assert config.timezone == "Asia/Seoul"
        assert config.vector.dimensions == 64
        assert config.vector.collection == "tidings_embeddings"
        assert config.classifier.enabled is True
        assert config.classifier.model == "gpt-4o-mini"
        assert config.classifier.timeout_seconds == 30.0
        assert config.gmail.access_token is None
        assert config.gmail.max_results == 50
        assert config.search.default_limit == 5
        assert config.search.lookahead_days == 60

    def test_paths_follow_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TIDINGS_DATA_DIR", str(tmp_path))
        config = TidingsConfig.from_env()
        assert config.data_dir == str(tmp_path)
        assert config.store.path == os.path.join(str(tmp_path), "records.db")
        assert config.vector.path == os.path.join(str(tmp_path), "vectors")
        assert config.cursor.path == os.path.join(str(tmp_path), "sync_state.json")


class TestEnvOverrides:
    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("TIDINGS_TIMEZONE", "UTC")
        monkeypatch.setenv("TIDINGS_VECTOR_PATH", ":memory:")
        monkeypatch.setenv("TIDINGS_EMBEDDING_DIMS", "32")
        monkeypatch.setenv("TIDINGS_CLASSIFIER_ENABLED", "False")
        monkeypatch.setenv("TIDINGS_CLASSIFIER_URL", "http://localhost:11434/v1")
        monkeypatch.setenv("TIDINGS_CLASSIFIER_MODEL", "llama3.2")
        monkeypatch.setenv("TIDINGS_CLASSIFIER_TIMEOUT", "5")
        monkeypatch.setenv("TIDINGS_GMAIL_TOKEN", "ya29.token")
        monkeypatch.setenv("TIDINGS_GMAIL_MAX_RESULTS", "100")
        monkeypatch.setenv("TIDINGS_SEARCH_LIMIT", "8")

        config = TidingsConfig.from_env()
        assert config.timezone == "UTC"
        assert config.vector.path == ":memory:"
        assert config.vector.dimensions == 32
        assert config.classifier.enabled is False
        assert config.classifier.base_url == "http://localhost:11434/v1"
        assert config.classifier.model == "llama3.2"
        assert config.classifier.timeout_seconds == 5.0
        assert config.gmail.access_token == "ya29.token"
        assert config.gmail.max_results == 100
        assert config.search.default_limit == 8

    def test_api_key_falls_back_to_openai(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        assert TidingsConfig.from_env().classifier.api_key == "sk-openai"
        monkeypatch.setenv("TIDINGS_CLASSIFIER_API_KEY", "sk-tidings")
        assert TidingsConfig.from_env().classifier.api_key == "sk-tidings"

    @pytest.mark.parametrize("raw", ["abc", "-1", "0", ""])
    def test_invalid_timeout_is_ignored(self, monkeypatch, raw):
        monkeypatch.setenv("TIDINGS_CLASSIFIER_TIMEOUT", raw)
        assert TidingsConfig.from_env().classifier.timeout_seconds == 30.0


class TestYaml:
    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "timezone: UTC\n"
            "classifier:\n"
            "  enabled: false\n"
            "search:\n"
            "  default_limit: 3\n"
            "vector:\n"
            "  path: ':memory:'\n",
            encoding="utf-8",
        )
        config = TidingsConfig.from_yaml(str(path))
        assert config.timezone == "UTC"
        assert config.classifier.enabled is False
        assert config.search.default_limit == 3
        assert config.search.lookahead_days == 60
        assert config.vector.path == ":memory:"

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert TidingsConfig.from_yaml(str(path)).timezone == "Asia/Seoul"

    def test_missing_yaml_falls_back_to_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TIDINGS_TIMEZONE", "Europe/Berlin")
        config = TidingsConfig.from_yaml(str(tmp_path / "absent.yaml"))
        assert config.timezone == "Europe/Berlin"


def test_ensure_directories(tmp_path):
    data = tmp_path / "tidings_data"
    config = TidingsConfig(
        data_dir=str(data),
        store=StoreConfig(path=str(data / "db" / "records.db")),
        vector=VectorConfig(path=str(data / "vectors")),
        cursor=CursorConfig(path=str(data / "state" / "sync_state.json")),
        classifier=ClassifierConfig(enabled=False),
    )
    config.ensure_directories()
    assert data.is_dir()
    assert (data / "db").is_dir()
    assert (data / "vectors").is_dir()
    assert (data / "state").is_dir()


def test_ensure_directories_skips_in_memory_vectors(tmp_path):
    config = TidingsConfig(
        data_dir=str(tmp_path / "d"),
        store=StoreConfig(path=str(tmp_path / "d" / "records.db")),
        vector=VectorConfig(path=":memory:"),
        cursor=CursorConfig(path=str(tmp_path / "d" / "sync_state.json")),
    )
    config.ensure_directories()
    assert not os.path.exists(":memory:")
