"""
Pytest configuration and fixtures for pixell-deploy tests.
"""

import io
import zipfile
from pathlib import Path

import pytest
import structlog

from pixell_deploy.core.config import Settings
from pixell_deploy.packages.cache import PackageCache
from pixell_deploy.utils.logging import setup_logging
from pixell_deploy.utils.service_messages import InMemoryLog


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """
    Keep every test away from the developer's home directory and .env file.
    """
    import os
    for key in list(os.environ):
        if key.upper().startswith("PIXELL_DEPLOY_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PIXELL_DEPLOY_HOME_DIR", str(tmp_path / "home"))
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def log():
    memory_log = InMemoryLog()
    setup_logging(memory_log, "DEBUG")
    return memory_log


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        home_dir=tmp_path / "home",
        min_free_disk_space_mb=0,
        download_attempt_backoff_seconds=0,
    )


@pytest.fixture
def cache(settings: Settings) -> PackageCache:
    return PackageCache(settings.package_cache_dir)


@pytest.fixture
def sleeps():
    """Records requested backoff sleeps instead of sleeping."""
    return []


def make_zip(entries) -> bytes:
    """Build a zip in memory from {name: content}; names ending in / are directories."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            if name.endswith("/"):
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def zip_bytes():
    return make_zip
