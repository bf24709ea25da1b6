"""Tests for the ASGI application and entry point."""

from unittest.mock import patch

from starlette.testclient import TestClient

from code_sandbox import __version__
from code_sandbox.server import app as app_module
from code_sandbox.server import create_app


class TestHealth:
    """Tests for health routes."""

    def test_health(self, config, sandbox) -> None:
        """Health reports ok with the package version."""
        client = TestClient(create_app(config, sandbox))

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == __version__

    def test_ping_alias(self, config, sandbox) -> None:
        """Ping is an alias of health."""
        client = TestClient(create_app(config, sandbox))
        assert client.get("/ping").json()["status"] == "ok"


class TestMain:
    """Tests for the entry point."""

    def test_stdio_transport(self, monkeypatch) -> None:
        """The default transport runs the server over stdio."""
        monkeypatch.delenv("CODE_SANDBOX_CONFIG", raising=False)
        with patch.object(app_module, "configure_logging") as configure, \
                patch.object(app_module.FastMCP, "run") as run:
            app_module.main()

        configure.assert_called_once_with(level="INFO", format="json")
        run.assert_called_once_with(transport="stdio")

    def test_sse_transport(self, sample_config_dict, tmp_path, monkeypatch) -> None:
        """The sse transport serves the ASGI app with uvicorn."""
        import yaml

        sample_config_dict["server"].update({"transport": "sse", "port": 9999})
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(sample_config_dict))
        monkeypatch.setenv("CODE_SANDBOX_CONFIG", str(path))

        with patch.object(app_module, "configure_logging"), patch("uvicorn.run") as run:
            app_module.main()

        _, kwargs = run.call_args
        assert kwargs == {"host": "127.0.0.1", "port": 9999}
