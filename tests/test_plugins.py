"""Tests for engine discovery."""

import pytest

from code_sandbox.backends.docker import DockerEngine
from code_sandbox.config import EngineConfig
from code_sandbox.exceptions import ConfigError
from code_sandbox.plugins import create_engine, discover_engines, get_engine_class


class TestPlugins:
    """Tests for engine plugins."""

    def test_docker_is_builtin(self):
        """The Docker engine is always available."""
        assert discover_engines()["docker"] is DockerEngine

    def test_unknown_engine(self):
        """Unknown engine names list the available ones."""
        with pytest.raises(ConfigError, match="Available: .*docker"):
            get_engine_class("podman-nope")

    def test_create_engine_passes_settings(self):
        """Engine settings become constructor arguments."""
        engine = create_engine(EngineConfig(base_url="tcp://127.0.0.1:2375", timeout_seconds=5))
        assert isinstance(engine, DockerEngine)
        assert engine._timeout == 5
        assert engine._base_url == "tcp://127.0.0.1:2375"
