"""Tests for configuration loading."""

from __future__ import annotations

import os

import pytest
from pydantic import ValidationError

from lmss.config import AppConfig, ClientSettings, load_config


def test_defaults():
    config = AppConfig()

    assert config.client.base_url == "http://localhost:1234/v1"
    assert config.client.api_key == "lm-studio"
    assert config.client.request_timeout == 120.0
    assert config.client.auto_select_first_model
    assert "read_file" in config.agent.tools


def test_base_url_trailing_slash_is_stripped():
    assert ClientSettings(base_url="http://box:1234/v1/").base_url == "http://box:1234/v1"


def test_timeouts_must_be_positive():
    with pytest.raises(ValidationError):
        ClientSettings(request_timeout=0)


def test_load_config_interpolates_env(tmp_path, monkeypatch):
    monkeypatch.setenv("LMSS_TEST_KEY", "secret-key")
    config_file = tmp_path / "lmss.yaml"
    config_file.write_text(
        "log_level: DEBUG\n"
        "client:\n"
        "  base_url: http://gpu-box:1234/v1\n"
        "  api_key: ${LMSS_TEST_KEY}\n"
        "  default_model: qwen2.5-7b-instruct\n"
        "agent:\n"
        "  temperature: 0.2\n"
        "  tools: [read_file]\n",
        encoding="utf-8",
    )

    config = load_config(config_file, tmp_path / ".env")

    assert config.log_level == "DEBUG"
    assert config.client.api_key == "secret-key"
    assert config.client.default_model == "qwen2.5-7b-instruct"
    assert config.agent.temperature == 0.2
    assert config.agent.tools == ["read_file"]


def test_load_config_reads_dotenv(tmp_path, monkeypatch):
    monkeypatch.delenv("LMSS_DOTENV_KEY", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("LMSS_DOTENV_KEY=from-dotenv\n", encoding="utf-8")
    config_file = tmp_path / "lmss.yaml"
    config_file.write_text("client:\n  api_key: ${LMSS_DOTENV_KEY}\n", encoding="utf-8")

    config = load_config(config_file, env_file)

    assert config.client.api_key == "from-dotenv"
    os.environ.pop("LMSS_DOTENV_KEY", None)


def test_unset_variables_are_left_verbatim(tmp_path, monkeypatch):
    monkeypatch.delenv("LMSS_UNSET_VAR", raising=False)
    config_file = tmp_path / "lmss.yaml"
    config_file.write_text("client:\n  api_key: ${LMSS_UNSET_VAR}\n", encoding="utf-8")

    assert load_config(config_file, tmp_path / ".env").client.api_key == "${LMSS_UNSET_VAR}"


def test_empty_file_gives_defaults(tmp_path):
    config_file = tmp_path / "lmss.yaml"
    config_file.write_text("", encoding="utf-8")

    assert load_config(config_file, tmp_path / ".env") == AppConfig()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml", tmp_path / ".env")
