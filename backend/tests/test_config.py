"""Settings loading from YAML and environment."""

from __future__ import annotations

from pathlib import Path

import pytest

from prompt_history.core.config import DEFAULT_DEBOUNCE_SEC, DEFAULT_SERVER_PORT, Settings


def test_yaml_sections_map_to_fields(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PHIST_BASE_DIR", raising=False)
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n"
        f"  base_dir: {tmp_path / 'store'}\n"
        "history:\n"
        "  max_entries: 50\n"
        "  server_port: 3100\n"
        "  confirm_delete: false\n"
        "app:\n"
        "  copy_debounce_sec: 0.5\n",
        encoding="utf-8",
    )

    settings = Settings.from_yaml(config)

    assert settings.base_dir == tmp_path / "store"
    assert settings.history_max_entries == 50
    assert settings.history_server_port == 3100
    assert settings.history_confirm_delete is False
    assert settings.copy_debounce_sec == 0.5


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("history:\n  max_entries: 50\n", encoding="utf-8")
    monkeypatch.setenv("PHIST_HISTORY_MAX_ENTRIES", "7")

    settings = Settings.from_yaml(config)

    assert settings.history_max_entries == 7
    assert settings.base_dir == tmp_path / "phist"


def test_config_path_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "elsewhere.yaml"
    config.write_text("history:\n  port_search: 5\n", encoding="utf-8")
    monkeypatch.setenv("PHIST_CONFIG", str(config))

    assert Settings.from_yaml().history_port_search == 5


@pytest.mark.parametrize("port", [0, -1, 70000])
def test_out_of_range_port_falls_back(port: int) -> None:
    assert Settings(history_server_port=port).history_server_port == DEFAULT_SERVER_PORT


def test_negative_debounce_falls_back() -> None:
    assert Settings(copy_debounce_sec=-1).copy_debounce_sec == DEFAULT_DEBOUNCE_SEC
    assert Settings(copy_debounce_sec=0).copy_debounce_sec == 0


def test_zero_capacity_is_kept() -> None:
    assert Settings(history_max_entries=0).history_max_entries == 0
