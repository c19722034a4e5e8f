"""Tests for the booking-guard CLI."""

from __future__ import annotations

import json
from unittest.mock import patch

from click.testing import CliRunner

from booking_guard.admission.keys import user_agent_bucket
from booking_guard.cli import cli
from tests.conftest import DESKTOP_UA, IPHONE_UA


def test_policy_outputs_json(monkeypatch) -> None:
    monkeypatch.setenv("BOOKING_IP_MAX_ATTEMPTS", "7")
    result = CliRunner().invoke(cli, ["policy"])
    assert result.exit_code == 0
    policy = json.loads(result.output)
    assert policy["booking_ip_max_attempts"] == 7
    assert policy["booking_phone_max_attempts"] == 50


def test_client_key_for_mobile_agent() -> None:
    result = CliRunner().invoke(cli, ["client-key", "1.2.3.4", "--user-agent", IPHONE_UA])
    assert result.exit_code == 0
    assert result.output.strip() == f"1.2.3.4-mobile-{user_agent_bucket(IPHONE_UA)}"


def test_client_key_for_desktop_agent() -> None:
    result = CliRunner().invoke(cli, ["client-key", "1.2.3.4", "--user-agent", DESKTOP_UA])
    assert result.output.strip() == "1.2.3.4"


def test_serve_runs_app_factory() -> None:
    with patch("booking_guard.cli.uvicorn.run") as mock_run:
        result = CliRunner().invoke(cli, ["serve", "--port", "9000"])
    assert result.exit_code == 0
    args, kwargs = mock_run.call_args
    assert args == ("booking_guard.api.app:create_app_from_env",)
    assert kwargs["factory"] is True
    assert kwargs["port"] == 9000
