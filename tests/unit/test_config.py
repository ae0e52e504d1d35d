"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from lending_gateway.config import (
    AppConfig,
    FiltersConfig,
    ServerConfig,
    UpstreamConfig,
    _interpolate_env,
    _validate,
    load_config,
)

ENDPOINT_VARS = ("SUBGRAPH_QUERY_ENDPOINT", "SUBGRAPH_SUBSCRIPTION_ENDPOINT")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENDPOINT_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("lending_gateway.config.load_dotenv", lambda: False)


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "plain": "text"})
        assert result == {"key": "secret", "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.upstream.query_endpoint == "https://subgraph.example.com/query"
        assert cfg.upstream.subscription_endpoint == "wss://subgraph.example.com/ws"
        assert cfg.upstream.timeout == 10
        assert cfg.server.port == 9600
        assert cfg.server.path == "/graphql"

    def test_defaults_for_omitted_sections(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.server.cors_origin == "*"

    def test_rejected_headers_are_lowercased(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.filters.rejected_headers == ("challenge-bypass-token",)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_HOST", "subgraph.internal")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "upstream:\n"
            '  query_endpoint: "https://${TEST_HOST}/query"\n'
            '  subscription_endpoint: "wss://${TEST_HOST}/ws"\n'
        )
        cfg = load_config(cfg_file)
        assert cfg.upstream.query_endpoint == "https://subgraph.internal/query"
        assert cfg.upstream.subscription_endpoint == "wss://subgraph.internal/ws"

    def test_endpoints_fall_back_to_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SUBGRAPH_QUERY_ENDPOINT", "https://env.example.com/q")
        monkeypatch.setenv("SUBGRAPH_SUBSCRIPTION_ENDPOINT", "wss://env.example.com/ws")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("server:\n  port: 9700\n")
        cfg = load_config(cfg_file)
        assert cfg.upstream.query_endpoint == "https://env.example.com/q"
        assert cfg.upstream.subscription_endpoint == "wss://env.example.com/ws"
        assert cfg.upstream.timeout == 30
        assert cfg.server.port == 9700
        assert cfg.filters.rejected_headers == ("challenge-bypass-token", "x_proxy_id")

    def test_missing_endpoint_raises(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text('upstream:\n  query_endpoint: "https://q.example.com"\n')
        with pytest.raises(ValueError, match="subscription endpoint"):
            load_config(cfg_file)

    def test_empty_file_uses_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SUBGRAPH_QUERY_ENDPOINT", "https://env.example.com/q")
        monkeypatch.setenv("SUBGRAPH_SUBSCRIPTION_ENDPOINT", "wss://env.example.com/ws")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("")
        cfg = load_config(cfg_file)
        assert cfg.server == ServerConfig()


class TestValidate:
    def _config(self, **upstream: object) -> AppConfig:
        values = {
            "query_endpoint": "https://q.example.com",
            "subscription_endpoint": "wss://s.example.com",
        }
        values.update(upstream)
        return AppConfig(upstream=UpstreamConfig(**values))

    def test_valid_config_passes(self) -> None:
        _validate(self._config())

    def test_missing_query_endpoint(self) -> None:
        with pytest.raises(ValueError, match="query endpoint"):
            _validate(self._config(query_endpoint=""))

    def test_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout"):
            _validate(self._config(timeout=0))

    def test_path_must_be_absolute(self) -> None:
        cfg = AppConfig(
            upstream=UpstreamConfig("https://q.example.com", "wss://s.example.com"),
            server=ServerConfig(path="graphql"),
        )
        with pytest.raises(ValueError, match="server.path"):
            _validate(cfg)


class TestFrozenConfig:
    def test_config_is_immutable(self, sample_app_config: AppConfig) -> None:
        with pytest.raises(AttributeError):
            sample_app_config.server = ServerConfig()  # type: ignore[misc]

    def test_default_filters(self) -> None:
        assert FiltersConfig().rejected_headers == ("challenge-bypass-token", "x_proxy_id")
