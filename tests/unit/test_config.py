"""
Unit tests for ServerConfig and the command line.
"""

from pathlib import Path

import pytest

from pipeserve.__main__ import build_parser, config_from_args
from pipeserve.config import ServerConfig


class TestDefaults:
    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "127.0.0.1"
        assert config.port == 3000
        assert config.api_prefix == "/api"
        assert config.rate_limit == 5
        assert config.rate_limit_window_ms == 60_000
        assert config.rate_limit_max_identifiers is None
        assert config.cors_origins == ["*"]
        assert config.database_url is None
        config.validate()

    def test_lists_not_shared(self):
        a, b = ServerConfig(), ServerConfig()
        a.cors_origins.append("http://a.test")
        assert b.cors_origins == ["*"]


class TestFromEnv:
    """Tests for ServerConfig.from_env()."""

    def test_empty_environment_gives_defaults(self):
        assert ServerConfig.from_env({}) == ServerConfig()

    def test_typed_values(self):
        config = ServerConfig.from_env({
            "PIPESERVE_PORT": "8000",
            "PIPESERVE_TIMEOUT": "2.5",
            "PIPESERVE_KEEP_ALIVE": "no",
            "PIPESERVE_DATABASE_URL": "sqlite:///users.db",
            "PIPESERVE_CORS_ORIGINS": "http://a.test, http://b.test,",
            "PIPESERVE_RATE_LIMIT_MAX_IDENTIFIERS": "1000",
            "PIPESERVE_LOG_FORMAT": "json",
        })

        assert config.port == 8000
        assert config.timeout == 2.5
        assert config.keep_alive is False
        assert config.database_url == "sqlite:///users.db"
        assert config.cors_origins == ["http://a.test", "http://b.test"]
        assert config.rate_limit_max_identifiers == 1000
        assert config.log_format == "json"

    @pytest.mark.parametrize("raw, expected", [
        ("1", True), ("true", True), ("YES", True), ("on", True),
        ("0", False), ("false", False), ("off", False),
    ])
    def test_booleans(self, raw, expected):
        assert ServerConfig.from_env({"PIPESERVE_SEED_DATA": raw}).seed_data is expected

    @pytest.mark.parametrize("raw", ["none", "None", ""])
    def test_optional_fields_accept_none(self, raw):
        config = ServerConfig.from_env({"PIPESERVE_TIMEOUT": raw, "PIPESERVE_STATIC_DIR": raw})

        assert config.timeout is None
        assert config.static_dir is None

    @pytest.mark.parametrize("env", [
        {"PIPESERVE_PORT": "eighty"},
        {"PIPESERVE_TIMEOUT": "soon"},
        {"PIPESERVE_PRETTY_JSON": "maybe"},
    ])
    def test_invalid_values(self, env):
        [name] = env
        with pytest.raises(ValueError, match=name):
            ServerConfig.from_env(env)

    def test_unrelated_variables_ignored(self):
        assert ServerConfig.from_env({"PORT": "1", "PIPESERVE": "x"}) == ServerConfig()


class TestValidate:
    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 70000},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"buffer_size": 10},
        {"timeout": 0},
        {"keep_alive_timeout": 0},
        {"api_prefix": "api"},
        {"rate_limit": 0},
        {"rate_limit_window_ms": 0},
        {"rate_limit_max_identifiers": 0},
        {"auth_token": ""},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ])
    def test_rejects(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    def test_static_dir_must_exist(self, tmp_path: Path):
        ServerConfig(static_dir=str(tmp_path)).validate()

        with pytest.raises(ValueError, match="static_dir"):
            ServerConfig(static_dir=str(tmp_path / "missing")).validate()

    def test_lowercase_log_level_accepted(self):
        ServerConfig(log_level="debug").validate()


class TestCommandLine:
    """Tests for build_parser() and config_from_args()."""

    def parse(self, *argv, base=None):
        return config_from_args(build_parser().parse_args(list(argv)), base or ServerConfig())

    def test_no_flags_keep_base(self):
        base = ServerConfig(port=9000)
        assert self.parse(base=base).port == 9000

    def test_flags_override(self):
        config = self.parse(
            "--host", "0.0.0.0",
            "-p", "8080",
            "--database-url", "sqlite://",
            "--api-prefix", "/v1",
            "--rate-limit-max-clients", "50",
            "-l", "debug",
            "--log-format", "json",
        )

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.database_url == "sqlite://"
        assert config.api_prefix == "/v1"
        assert config.rate_limit_max_identifiers == 50
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_workers_sets_pool_bounds(self):
        config = self.parse("--workers", "3")

        assert config.min_workers == 3
        assert config.max_workers == 6

    def test_static(self, tmp_path: Path):
        assert self.parse("--static", str(tmp_path)).static_dir == str(tmp_path)

    def test_bad_log_level_exits(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "loud"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert "pipeserve" in capsys.readouterr().out

    def test_main_reports_invalid_config(self, capsys, monkeypatch):
        from pipeserve.__main__ import main

        monkeypatch.delenv("PIPESERVE_PORT", raising=False)
        assert main(["--api-prefix", "nope"]) == 2
        assert "api_prefix" in capsys.readouterr().err
