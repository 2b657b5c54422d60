"""Tests for configuration loading and validation."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from opentsdb_reporter.config import Config, OpenTsdbConfig, ReporterConfig, load_config
from opentsdb_reporter.units import TimeUnit

EXAMPLE_CONFIG = Path(__file__).parent.parent / "configs" / "example.yaml"


def test_example_config_loads(monkeypatch):
    monkeypatch.delenv("OPENTSDB_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    config = load_config(str(EXAMPLE_CONFIG))

    assert isinstance(config, Config)
    assert config.opentsdb.base_url == "http://localhost:4242"
    assert config.opentsdb.batch_size == 10
    assert config.reporter.prefix == "myapp"
    assert config.reporter.tags == {"host": "web01", "dc": "lga"}
    assert config.reporter.rate_unit is TimeUnit.SECONDS
    assert config.reporter.duration_unit is TimeUnit.MILLISECONDS
    assert config.global_.control_api_port == 8081


def test_defaults():
    config = Config()
    assert config.opentsdb.connect_timeout_ms == 5000
    assert config.opentsdb.read_timeout_ms == 5000
    assert config.opentsdb.batch_size == 0
    assert config.reporter.prefix is None
    assert config.reporter.tags is None
    assert config.global_.log_level == "INFO"


def test_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("reporter:\n  prefix: app\n")
    monkeypatch.setenv("OPENTSDB_URL", "http://tsdb.internal:4242/")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = load_config(str(path))

    assert config.opentsdb.base_url == "http://tsdb.internal:4242"
    assert config.global_.log_level == "DEBUG"


def test_empty_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENTSDB_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_config(str(path)) == Config()


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/config.yaml")


@pytest.mark.parametrize("yaml_text", [
    "opentsdb:\n  batch_size: -1\n",
    "opentsdb:\n  base_url: localhost:4242\n",
    "opentsdb:\n  read_timeout_ms: 0\n",
    "reporter:\n  rate_unit: fortnights\n",
    "reporter:\n  tags:\n    host: web 01\n",
    "global:\n  log_level: LOUD\n",
])
def test_invalid_configs(tmp_path, monkeypatch, yaml_text):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    path = tmp_path / "bad.yaml"
    path.write_text(yaml_text)

    with pytest.raises(ValueError, match="Configuration validation failed"):
        load_config(str(path))


def test_configs_are_frozen():
    config = OpenTsdbConfig()
    with pytest.raises(ValidationError):
        config.batch_size = 10


def test_include_exclude_filter():
    config = ReporterConfig(include=["http.*", "db.*"], exclude=["db.debug.*"])

    assert config.matches("http.requests")
    assert config.matches("db.queries")
    assert not config.matches("db.debug.queries")
    assert not config.matches("cache.hits")

    assert ReporterConfig().matches("anything")
