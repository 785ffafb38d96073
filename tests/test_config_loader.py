"""Tests for config.yaml loading and the per-event runtime settings."""

import pytest
import yaml

from jobtrack.config_loader import (
    RuntimeSettingsFile,
    load_config,
    load_runtime_settings,
    validate_sink_url,
)
from jobtrack.errors import ConfigError

APPS_SCRIPT_URL = "https://script.google.com/macros/s/abc123/exec"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    # Overrides from the developer's shell would leak into every test
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("JOBTRACK_SINK_URL", raising=False)
    monkeypatch.delenv("JOBTRACK_PAUSED", raising=False)


def write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_defaults_from_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    config = load_config(path)
    assert config.policy == "apply_intent"
    assert config.debounce_seconds == 2.5
    assert config.dedupe_window_days == 7.0
    assert config.retry.max_attempts == 5
    assert config.browser_headless is False


def test_full_config(tmp_path):
    path = write_config(
        tmp_path,
        {
            "sink": {"url": APPS_SCRIPT_URL, "timeout_seconds": 5},
            "tracking": {
                "policy": "Detail_View",
                "debounce_seconds": 0,
                "job_search_start_date": "2024-01-01",
            },
            "retry": {"max_attempts": 3, "backoff_base_seconds": 0},
            "storage": {"state_path": "state/jobs.json"},
            "browser": {"headless": True},
        },
    )
    config = load_config(path)
    assert config.policy == "detail_view"
    assert config.debounce_seconds == 0
    assert config.sink_timeout_seconds == 5
    assert config.retry.max_attempts == 3
    assert config.retry.backoff_base_seconds == 0
    assert str(config.state_path) == "state/jobs.json"
    assert config.job_search_start_date == "2024-01-01"
    assert config.browser_headless is True


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Config not found"):
        load_config(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("sink: [unclosed")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path)


def test_top_level_must_be_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


@pytest.mark.parametrize(
    "data, message",
    [
        ({"tracking": {"policy": "both"}}, "tracking.policy"),
        ({"retry": {"max_attempts": 0}}, "max_attempts"),
        ({"tracking": {"dedupe_window_days": 0}}, "dedupe_window_days"),
        ({"tracking": {"debounce_seconds": "soon"}}, "debounce_seconds"),
        ({"sink": {"url": "ftp://example.com/hook"}}, "http"),
    ],
)
def test_invalid_values(tmp_path, data, message):
    with pytest.raises(ConfigError, match=message):
        load_config(write_config(tmp_path, data))


def test_validate_sink_url():
    assert validate_sink_url("") == ""
    assert validate_sink_url(f"  {APPS_SCRIPT_URL}  ") == APPS_SCRIPT_URL
    # Any http(s) endpoint is allowed, with a warning
    assert validate_sink_url("https://hooks.example.com/jobs") == "https://hooks.example.com/jobs"
    with pytest.raises(ConfigError):
        validate_sink_url("script.google.com/macros/s/abc/exec")


def test_runtime_settings(tmp_path):
    path = write_config(tmp_path, {"sink": {"url": APPS_SCRIPT_URL}, "tracking": {"paused": True}})
    settings = load_runtime_settings(path)
    assert settings.sink_url == APPS_SCRIPT_URL
    assert settings.paused is True


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write_config(tmp_path, {"sink": {"url": ""}, "tracking": {"paused": True}})
    monkeypatch.setenv("JOBTRACK_SINK_URL", APPS_SCRIPT_URL)
    monkeypatch.setenv("JOBTRACK_PAUSED", "false")
    settings = load_runtime_settings(path)
    assert settings.sink_url == APPS_SCRIPT_URL
    assert settings.paused is False


def test_runtime_settings_pick_up_edits(tmp_path):
    path = write_config(tmp_path, {"sink": {"url": ""}})
    settings = RuntimeSettingsFile(path)
    assert settings().sink_url == ""

    write_config(tmp_path, {"sink": {"url": APPS_SCRIPT_URL}, "tracking": {"paused": True}})
    assert settings().sink_url == APPS_SCRIPT_URL
    assert settings().paused is True


def test_broken_edit_keeps_last_good_settings(tmp_path):
    path = write_config(tmp_path, {"sink": {"url": APPS_SCRIPT_URL}})
    settings = RuntimeSettingsFile(path)
    assert settings().sink_url == APPS_SCRIPT_URL

    path.write_text("sink: [unclosed")
    assert settings().sink_url == APPS_SCRIPT_URL
