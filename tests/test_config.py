"""Tests for agent configuration."""

from pathlib import Path

import pytest

from pixell_deploy.core.config import Settings, load_settings
from pixell_deploy.core.exceptions import ConfigurationError


def test_defaults_derive_from_home(tmp_path):
    settings = load_settings()

    assert settings.home_dir == tmp_path / "home"
    assert settings.package_cache_dir == tmp_path / "home" / "Files"
    assert settings.journal_file == tmp_path / "home" / "DeploymentJournal.jsonl"
    assert settings.applications_root == tmp_path / "home" / "Applications"
    assert settings.max_download_attempts == 5
    assert settings.download_attempt_backoff_seconds == 10
    assert settings.github_page_size == 1000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PIXELL_DEPLOY_CACHE_DIR", "/srv/cache")
    monkeypatch.setenv("PIXELL_DEPLOY_MAX_DOWNLOAD_ATTEMPTS", "2")
    monkeypatch.setenv("pixell_deploy_log_format", "JSON")

    settings = load_settings()

    assert settings.package_cache_dir == Path("/srv/cache")
    assert settings.max_download_attempts == 2
    assert settings.log_format == "json"


def test_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("PIXELL_DEPLOY_GITHUB_MAX_PAGES=7\n")

    assert Settings().github_max_pages == 7


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_download_attempts": 0},
        {"download_attempt_backoff_seconds": -1},
        {"github_page_size": 0},
        {"log_format": "xml"},
    ],
)
def test_invalid_settings(overrides):
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_settings(**overrides)
