"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest

from kind_env.config import Config
from tests.helpers.fake_environment import FakeClock, FakeEnvironment

if typ.TYPE_CHECKING:
    from pathlib import Path

NOW = dt.datetime(2026, 3, 1, 12, 0, 0, tzinfo=dt.UTC)
INITIAL_HOSTS = "127.0.0.1 localhost\n::1 localhost ip6-localhost\n"


@pytest.fixture
def now() -> dt.datetime:
    """Return the fixed wall-clock time used by certificate checks."""
    return NOW


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create an application checkout containing only a Dockerfile."""
    root = tmp_path / "app"
    root.mkdir()
    (root / "Dockerfile").write_text("FROM eclipse-temurin:21-jre\n", encoding="utf-8")
    return root


@pytest.fixture
def hosts_file(tmp_path: Path) -> Path:
    """Create a hosts file with the usual loopback entries."""
    path = tmp_path / "hosts"
    path.write_text(INITIAL_HOSTS, encoding="utf-8")
    return path


@pytest.fixture
def cfg(project_root: Path, hosts_file: Path) -> Config:
    """Return configuration rooted in the temporary project."""
    return Config(project_root=project_root, hosts_file=hosts_file)


@pytest.fixture
def fake_env(now: dt.datetime) -> FakeEnvironment:
    """Return a fake tool chain on an empty host."""
    return FakeEnvironment(now=now)


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake monotonic clock."""
    return FakeClock()
