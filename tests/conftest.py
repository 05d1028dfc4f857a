"""Shared fixtures for the vaultpush test suite."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from fakes import FakeProvider


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Return a fresh fake cluster provider."""
    return FakeProvider()


@pytest.fixture
def write_values(tmp_path: Path) -> Callable[[str], Path]:
    """Return a helper that writes a values-secret.yaml document."""

    def _write(content: str, name: str = "values-secret.yaml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
