"""Tests for environment derived service configuration."""

from unittest.mock import patch

import pytest

from app.service_config import (
    DEFAULT_PORT,
    LOCAL_MAX_CONCURRENCY,
    LOCAL_MAX_PAGES,
    SERVERLESS_MAX_CONCURRENCY,
    SERVERLESS_MAX_PAGES,
    ServiceConfig,
    get_service_config,
    is_enabled,
)


class TestDeploymentProfile:
    def test_local_by_default(self):
        config = ServiceConfig.from_env({})

        assert config.serverless is False
        assert config.environment == "local"
        assert config.max_pages == LOCAL_MAX_PAGES == 30
        assert config.max_concurrency == LOCAL_MAX_CONCURRENCY == 5
        assert config.port == DEFAULT_PORT
        assert config.chromium_executable_path is None
        assert config.service_version == "dev"

    @pytest.mark.parametrize("env", [{"VERCEL": "1"}, {"AWS_LAMBDA_FUNCTION_NAME": "html2pdf"}, {"DEPLOYMENT_MODE": "Serverless"}])
    def test_serverless_detection(self, env):
        config = ServiceConfig.from_env(env)

        assert config.environment == "serverless"
        assert config.max_pages == SERVERLESS_MAX_PAGES == 10
        assert config.max_concurrency == SERVERLESS_MAX_CONCURRENCY == 3

    def test_explicit_mode_wins_over_platform_variables(self):
        assert ServiceConfig.from_env({"DEPLOYMENT_MODE": "local", "VERCEL": "1"}).serverless is False

    def test_unknown_mode_falls_back_to_detection(self, caplog):
        config = ServiceConfig.from_env({"DEPLOYMENT_MODE": "kubernetes", "AWS_LAMBDA_FUNCTION_NAME": "x"})

        assert config.serverless is True
        assert "Unknown DEPLOYMENT_MODE 'kubernetes'" in caplog.text


class TestLimits:
    def test_overrides(self):
        config = ServiceConfig.from_env({"MAX_PAGES": "12", "MAX_CONCURRENT_RENDERS": "2", "PORT": "8080"})

        assert config.max_pages == 12
        assert config.max_concurrency == 2
        assert config.port == 8080

    def test_overrides_apply_to_serverless_profile(self):
        config = ServiceConfig.from_env({"VERCEL": "1", "MAX_PAGES": "20"})

        assert config.max_pages == 20
        assert config.max_concurrency == SERVERLESS_MAX_CONCURRENCY

    @pytest.mark.parametrize(("env_var", "value"), [("MAX_PAGES", "many"), ("MAX_PAGES", "0"), ("MAX_PAGES", "101"), ("MAX_CONCURRENT_RENDERS", "21"), ("PORT", "70000")])
    def test_invalid_values_fall_back_to_default(self, caplog, env_var, value):
        config = ServiceConfig.from_env({env_var: value})

        assert config == ServiceConfig.from_env({})
        assert env_var in caplog.text

    def test_blank_value_is_default(self):
        assert ServiceConfig.from_env({"MAX_PAGES": "  "}).max_pages == LOCAL_MAX_PAGES

    def test_executable_path_and_version(self):
        config = ServiceConfig.from_env({"CHROMIUM_EXECUTABLE_PATH": "/opt/chromium/chrome", "HTML2PDF_SERVICE_VERSION": "2.1.0"})

        assert config.chromium_executable_path == "/opt/chromium/chrome"
        assert config.service_version == "2.1.0"


@pytest.mark.parametrize(
    ("value", "default", "expected"),
    [(None, True, True), (None, False, False), ("yes", False, True), (" ON ", False, True), ("off", True, False), ("", True, False)],
)
def test_is_enabled(value, default, expected):
    assert is_enabled(value, default=default) is expected


def test_config_is_immutable():
    config = ServiceConfig()
    with pytest.raises(AttributeError):
        config.max_pages = 99  # type: ignore[misc]


def test_get_service_config_reads_environment_once(monkeypatch):
    monkeypatch.setenv("MAX_PAGES", "7")

    with patch("app.service_config._service_config", None):
        first = get_service_config()
        monkeypatch.setenv("MAX_PAGES", "8")

        assert first.max_pages == 7
        assert get_service_config() is first
