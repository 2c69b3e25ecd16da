from pathlib import Path

import pytest

from contentcollector import config as config_module
from contentcollector.config import CollectorSettings


def test_round_trip(tmp_path: Path) -> None:
    config_path = tmp_path / "collector.json"
    settings = CollectorSettings(max_concurrency=5, source_timeout=20, fetch_timeout=(5, 30))
    settings.dump(config_path)

    loaded = CollectorSettings.from_file(config_path)
    assert loaded.max_concurrency == 5
    assert loaded.source_timeout == 20
    assert loaded.fetch_timeout == (5, 30)


def test_defaults_match_collection_limits() -> None:
    settings = CollectorSettings()

    assert settings.fetch_attempts == 3
    assert settings.max_redirects == 5
    assert settings.max_concurrency == 3
    assert settings.source_timeout == 15
    assert settings.slow_threshold == 8
    assert settings.recency_months == 2
    assert settings.max_detail_pages == 10
    assert settings.max_body_length == 50_000


def test_from_file_reports_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "collector.json"
    config_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid JSON"):
        CollectorSettings.from_file(config_path)


def test_from_file_reports_invalid_values(tmp_path: Path) -> None:
    config_path = tmp_path / "collector.json"
    config_path.write_text('{"max_concurrency": 0}', encoding="utf-8")

    with pytest.raises(ValueError, match="invalid"):
        CollectorSettings.from_file(config_path)


def test_load_falls_back_to_defaults_when_default_file_missing(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv(config_module.SETTINGS_ENV_VAR, raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_SETTINGS_PATH", tmp_path / "missing.json")

    assert CollectorSettings.load() == CollectorSettings()


def test_load_requires_explicitly_configured_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv(config_module.SETTINGS_ENV_VAR, str(tmp_path / "missing.json"))

    with pytest.raises(FileNotFoundError):
        CollectorSettings.load()


def test_load_reads_environment_selected_file(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "collector.json"
    CollectorSettings(slow_threshold=3).dump(config_path)
    monkeypatch.setenv(config_module.SETTINGS_ENV_VAR, str(config_path))

    assert CollectorSettings.load().slow_threshold == 3
