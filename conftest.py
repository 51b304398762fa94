"""Global test configuration and shared fixtures."""

import logging

import pytest

from fakes import FakeControlPlane, FakeSessionFactory, RecordingOutput, ScriptedPrompt


@pytest.fixture(autouse=True)
def _reset_opsfleet_logging():
    yield
    logging.getLogger("opsfleet").handlers.clear()


@pytest.fixture
def output():
    return RecordingOutput()


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def prompt():
    return ScriptedPrompt(interactive=False)


@pytest.fixture
def ops_toml(tmp_path):
    """Writes an ops.toml into tmp_path and returns its path."""

    def _write(body: str) -> str:
        path = tmp_path / "ops.toml"
        path.write_text(body)
        return str(path)

    return _write
