"""Test configuration and fixtures for Timepon."""

import os

import pytest

from timepon.config import WORKSPACE_ENV, TimeponConfig
from timepon.context import TimeponContext


@pytest.fixture(autouse=True)
def _isolate_workspace_env(monkeypatch):
    """Keep a developer's TIMEPON_WORKSPACE from leaking into tests."""
    monkeypatch.delenv(WORKSPACE_ENV, raising=False)


@pytest.fixture
def workspace(tmp_path):
    """Provide a temporary workspace directory."""
    return tmp_path


@pytest.fixture
def make_file(workspace):
    """Write a file under the workspace and return its absolute path."""
    def _make(rel_path, content="", mode="w"):
        path = workspace / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if mode == "wb":
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return str(path)
    return _make


@pytest.fixture
def config(workspace):
    return TimeponConfig(
        workspace_root=str(workspace),
        stability_threshold=0.05,
        save_retry_base_delay=0.001,
    )


@pytest.fixture
def context(config):
    """A context that has not started watching."""
    return TimeponContext(config)


def document_text(config):
    with open(config.document_path, "r", encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def read_document(config):
    return lambda: document_text(config)


@pytest.fixture
def abspath(workspace):
    return lambda rel: os.path.join(str(workspace), rel)
