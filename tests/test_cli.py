"""Tests for the mockmode CLI."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner, Result

from mockmode.cli import cli
from mockmode.log import ROOT_LOGGER


def invoke(*args: str) -> Result:
    return CliRunner().invoke(cli, list(args), obj={})


class TestStatus:
    def test_json(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--services", "tracker", "status", "--json")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["mock_mode_enabled"] is False
        assert payload["services"]["tracker"]["active"] is True
        assert payload["services"]["tracker"]["config_summary"] == {"mode": "slow"}
        assert payload["services"]["mailer"]["active"] is False
        assert payload["interceptor_count"] == 2
        assert payload["failures"] == {}

    def test_table(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--mode", "status")

        assert result.exit_code == 0, result.output
        assert "Mock services" in result.output
        assert "tracker" in result.output
        assert "mailer" in result.output
        assert "Global mock mode: on" in result.output

    def test_environment_is_read(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOCK_CONFIG_FILE", str(config_file))
        monkeypatch.setenv("MOCK_SERVICES", "mailer")

        result = invoke("status", "--json")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["services"]["mailer"]["active"] is True
        assert payload["services"]["tracker"]["active"] is False

    def test_failures_exit_nonzero(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--services", "tracker,ghost", "status")

        assert result.exit_code == 1
        assert "ghost" in result.output

    def test_invalid_config_file(self, clean_env: Path) -> None:
        path = clean_env / "broken.yaml"
        path.write_text("mocks:\n  tracker:\n    definition: not_an_import_path\n")

        result = invoke("--config", str(path), "status")

        assert result.exit_code == 2

    def test_leaves_httpx_untouched(self, config_file: Path) -> None:
        original = httpx.HTTPTransport.handle_request

        invoke("--config", str(config_file), "--mode", "status", "--json")

        assert httpx.HTTPTransport.handle_request is original

    def test_verbose_sets_debug(self, clean_env: Path) -> None:
        result = invoke("--verbose", "status", "--json")

        assert result.exit_code == 0
        assert logging.getLogger(ROOT_LOGGER).level == logging.DEBUG


class TestVerify:
    def test_match(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--services", "tracker", "verify", "tracker")

        assert result.exit_code == 0, result.output
        assert "Active services match: tracker" in result.output

    def test_missing(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--services", "tracker", "verify", "tracker", "mailer")

        assert result.exit_code == 1
        assert "Missing:" in result.output
        assert "mailer" in result.output

    def test_unexpected(self, config_file: Path) -> None:
        result = invoke("--config", str(config_file), "--mode", "verify", "tracker")

        assert result.exit_code == 1
        assert "Unexpected:" in result.output

    def test_nothing_expected_nothing_active(self, clean_env: Path) -> None:
        result = invoke("verify")

        assert result.exit_code == 0
        assert "none" in result.output
