# Tests for config.py: layered loading and fail-soft behaviour.
# Created: 2026-03-02

import json
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from gemini_bridge.config import Config, get_config_dir, load_config


def _env(tmp_path, **extra):
    return {"GEMINI_BRIDGE_CONFIG_DIR": str(tmp_path), **extra}


def _write_config(tmp_path, data) -> Path:
    path = tmp_path / "config.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


class TestConfigDir:
    def test_explicit_dir_wins(self):
        env = {"GEMINI_BRIDGE_CONFIG_DIR": "/opt/bridge", "XDG_CONFIG_HOME": "/xdg"}
        assert get_config_dir(env) == Path("/opt/bridge")

    def test_xdg_config_home(self):
        assert get_config_dir({"XDG_CONFIG_HOME": "/xdg"}) == Path("/xdg/gemini-bridge")

    def test_home_fallback(self):
        assert get_config_dir({}) == Path.home() / ".config" / "gemini-bridge"


class TestDefaults:
    def test_builtin_defaults(self, tmp_path):
        cfg = load_config(environ=_env(tmp_path))
        assert cfg.claude_token_limit == 50_000
        assert cfg.gemini_token_limit == 800_000
        assert cfg.min_files_for_delegation == 2
        assert cfg.min_file_size_bytes == 5120
        assert cfg.complexity_threshold == 6
        assert cfg.keyword_matching_enabled is True
        assert cfg.complexity_scoring_enabled is True
        assert cfg.default_provider == "gemini-cli"
        assert cfg.config_dir == tmp_path

    def test_paths(self, tmp_path):
        cfg = load_config(environ=_env(tmp_path))
        assert cfg.config_file == tmp_path / "config.json"
        assert cfg.auth_dir == tmp_path / "auth"
        assert cfg.status_log == tmp_path / "bridge-status.log"

    def test_frozen(self, config):
        with pytest.raises(ValidationError):
            config.claude_token_limit = 1


class TestLayers:
    def test_file_layer(self, tmp_path):
        _write_config(
            tmp_path,
            {
                "limits": {"claude_tokens": 1000, "min_files": 5, "max_size": 2048},
                "delegation": {"complexity_threshold": 8, "keyword_matching": False},
                "providers": {"default": "gemini-api", "model": "gemini-2.5-flash"},
            },
        )
        cfg = load_config(environ=_env(tmp_path))
        assert cfg.claude_token_limit == 1000
        assert cfg.min_files_for_delegation == 5
        assert cfg.min_file_size_bytes == 2048
        assert cfg.complexity_threshold == 8
        assert cfg.keyword_matching_enabled is False
        assert cfg.default_provider == "gemini-api"
        assert cfg.gemini_model == "gemini-2.5-flash"

    def test_env_beats_file(self, tmp_path):
        _write_config(tmp_path, {"limits": {"claude_tokens": 1000, "min_files": 5}})
        cfg = load_config(environ=_env(tmp_path, CLAUDE_TOKEN_LIMIT="2000"))
        assert cfg.claude_token_limit == 2000
        assert cfg.min_files_for_delegation == 5

    def test_env_beats_default(self, tmp_path):
        cfg = load_config(
            environ=_env(
                tmp_path,
                GEMINI_TOKEN_LIMIT="900000",
                MIN_FILES_FOR_GEMINI="4",
                MIN_FILE_SIZE_FOR_GEMINI="100",
                GEMINI_BRIDGE_PROVIDER="gemini-oauth",
            )
        )
        assert cfg.gemini_token_limit == 900_000
        assert cfg.min_files_for_delegation == 4
        assert cfg.min_file_size_bytes == 100
        assert cfg.default_provider == "gemini-oauth"

    def test_explicit_config_path(self, tmp_path):
        other = tmp_path / "elsewhere.json"
        other.write_text(json.dumps({"limits": {"min_files": 9}}))
        cfg = load_config(config_path=other, environ=_env(tmp_path))
        assert cfg.min_files_for_delegation == 9

    def test_oauth_and_encryption_sections(self, tmp_path):
        _write_config(
            tmp_path,
            {
                "oauth": {"client_id": "abc", "client_secret": "s3cret", "auto_refresh": False},
                "encryption": {"enabled": True, "algorithm": "aes-256-cbc"},
            },
        )
        cfg = load_config(environ=_env(tmp_path))
        assert cfg.oauth.client_id == "abc"
        assert cfg.oauth.client_secret.get_secret_value() == "s3cret"
        assert cfg.oauth.auto_refresh is False
        assert cfg.oauth.redirect_uri == "http://localhost:8085/oauth/callback"

    def test_secrets_from_env(self, tmp_path):
        cfg = load_config(
            environ=_env(tmp_path, GEMINI_API_KEY="key-123", OAUTH_ENCRYPTION_PASSWORD="pw")
        )
        assert cfg.gemini_api_key.get_secret_value() == "key-123"
        assert cfg.encryption_password.get_secret_value() == "pw"
        assert "key-123" not in repr(cfg)


class TestFailSoft:
    def test_malformed_file_falls_back(self, tmp_path, caplog):
        _write_config(tmp_path, "{not json")
        with caplog.at_level(logging.WARNING):
            cfg = load_config(environ=_env(tmp_path))
        assert cfg.claude_token_limit == 50_000
        assert "Ignoring unreadable config file" in caplog.text

    def test_non_object_file(self, tmp_path, caplog):
        _write_config(tmp_path, "[1, 2, 3]")
        with caplog.at_level(logging.WARNING):
            cfg = load_config(environ=_env(tmp_path))
        assert cfg.min_files_for_delegation == 2
        assert "not an object" in caplog.text

    def test_invalid_value_drops_file_layer(self, tmp_path, caplog):
        _write_config(tmp_path, {"limits": {"claude_tokens": "lots", "min_files": 3}})
        with caplog.at_level(logging.WARNING):
            cfg = load_config(environ=_env(tmp_path, GEMINI_TOKEN_LIMIT="700000"))
        assert cfg.claude_token_limit == 50_000
        assert cfg.min_files_for_delegation == 2
        assert cfg.gemini_token_limit == 700_000

    def test_unparseable_env_skipped(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            cfg = load_config(
                environ=_env(tmp_path, CLAUDE_TOKEN_LIMIT="abc", GEMINI_TOKEN_LIMIT="900000")
            )
        assert cfg.claude_token_limit == 50_000
        assert cfg.gemini_token_limit == 900_000
        assert "CLAUDE_TOKEN_LIMIT" in caplog.text

    def test_boolean_env(self, tmp_path):
        cfg = load_config(
            environ=_env(
                tmp_path, KEYWORD_MATCHING_ENABLED="false", COMPLEXITY_SCORING_ENABLED="maybe"
            )
        )
        assert cfg.keyword_matching_enabled is False
        assert cfg.complexity_scoring_enabled is True

    def test_empty_env_value_ignored(self, tmp_path):
        cfg = load_config(environ=_env(tmp_path, CLAUDE_TOKEN_LIMIT=""))
        assert cfg.claude_token_limit == 50_000


class TestWarnings:
    def test_non_positive_threshold_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            cfg = load_config(environ=_env(tmp_path, MIN_FILES_FOR_GEMINI="0"))
        assert cfg.min_files_for_delegation == 0
        assert cfg.non_positive_thresholds() == ["min_files_for_delegation"]
        assert "fire on every request" in caplog.text

    def test_zero_complexity_threshold_is_not_flagged(self):
        assert Config(complexity_threshold=0).non_positive_thresholds() == []
        assert Config(complexity_threshold=-1).non_positive_thresholds() == [
            "complexity_threshold"
        ]

    def test_encryption_disabled_warns(self, tmp_path, caplog):
        _write_config(tmp_path, {"encryption": {"enabled": False}})
        with caplog.at_level(logging.WARNING):
            cfg = load_config(environ=_env(tmp_path))
        assert cfg.encryption.enabled is False
        assert "always encrypted" in caplog.text

    def test_unsupported_algorithm_warns(self, tmp_path, caplog):
        _write_config(tmp_path, {"encryption": {"algorithm": "rot13"}})
        with caplog.at_level(logging.WARNING):
            load_config(environ=_env(tmp_path))
        assert "Unsupported encryption algorithm" in caplog.text
