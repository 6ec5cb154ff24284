from __future__ import annotations

from pathlib import Path

import pytest

from sipstatus.config import StatusConfig
from sipstatus.exceptions import ConfigError


def test_config_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AMI_HOST", "pbx.example.net")
    monkeypatch.setenv("AMI_PORT", "5039")
    monkeypatch.setenv("AMI_USER", "status")
    monkeypatch.setenv("AMI_PASS", "secret")
    monkeypatch.setenv("SERVE_PORT", "9100")
    monkeypatch.setenv("ADMIN_PASSWORD", "letmein")
    monkeypatch.setenv("DEBUG", "1")
    monkeypatch.delenv("SERVE_IP", raising=False)

    config = StatusConfig.from_env(dotenv_path=tmp_path / "missing.env")

    assert config.ami.host == "pbx.example.net"
    assert config.ami.port == 5039
    assert config.ami.username == "status"
    assert config.serve_ip == "127.0.0.1"
    assert config.serve_port == 9100
    assert config.admin_password == "letmein"
    assert config.debug is True


def test_config_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SERVE_PORT", "9100")
    monkeypatch.setenv("DEBUG", "")

    config = StatusConfig.from_env(dotenv_path=tmp_path / "missing.env", serve_port=9200)

    assert config.serve_port == 9200
    assert config.debug is False


def test_config_loads_dotenv_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Record the variable so whatever load_dotenv sets is undone after the test.
    monkeypatch.setenv("ADMIN_PASSWORD", "placeholder")
    monkeypatch.delenv("ADMIN_PASSWORD")
    env_file = tmp_path / ".env"
    env_file.write_text("ADMIN_PASSWORD=from-dotenv\n", encoding="utf-8")

    config = StatusConfig.from_env(dotenv_path=env_file)

    assert config.admin_password == "from-dotenv"


def test_config_rejects_bad_number(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SERVE_PORT", "ninety")

    with pytest.raises(ConfigError):
        StatusConfig.from_env(dotenv_path=tmp_path / "missing.env")
