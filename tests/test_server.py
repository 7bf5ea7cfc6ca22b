"""Tests for the website entry point."""
import json
import logging
from unittest.mock import patch

import pytest

from config.logging import configure_logging
from config.settings import PortalSettings
from website.server import build_app, main

from conftest import LTC_ADDRESS

POOL = {
    "address": LTC_ADDRESS,
    "paymentProcessing": {"daemon": {"port": 19332}},
}


def test_build_app_wires_service(templates_dir):
    app, portal_config = build_app(PortalSettings(
        portal_config={"website": {"templatesDir": str(templates_dir), "port": 8081}},
        pools={"Litecoin": POOL},
    ))

    service = app.state.service
    assert portal_config.website.port == 8081
    assert list(service.pool_configs) == ["Litecoin"]
    assert set(service.loader.website.pages.values()) >= {"index", "workers"}


def test_main_runs_uvicorn_with_cli_overrides(tmp_path, templates_dir):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"website": {"templatesDir": str(templates_dir)}}))

    with patch("website.server.uvicorn.run") as run, \
            patch("website.server.configure_logging") as configure:
        main(["--config", str(config_file), "--port", "9000", "--log-level", "debug"])

    configure.assert_called_once_with("DEBUG", json_output=True)
    _, kwargs = run.call_args
    assert kwargs["host"] == "0.0.0.0"
    assert kwargs["port"] == 9000
    assert kwargs["log_config"] is None


def test_main_exits_when_port_unavailable(tmp_path, templates_dir):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"website": {"templatesDir": str(templates_dir)}}))

    with patch("website.server.uvicorn.run", side_effect=OSError("address in use")), \
            patch("website.server.configure_logging"):
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", str(config_file)])
    assert excinfo.value.code == 1


def test_configure_logging_installs_json_handler():
    configure_logging("WARNING")
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert any(handler.formatter is not None for handler in root.handlers)
