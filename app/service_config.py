"""
Environment derived service configuration.

The configuration is read once per process (see get_service_config) and is
immutable afterwards. It selects between the resource-constrained serverless
profile and the local profile, and carries the values that the pipeline and
the rendering engine need at construction time.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SERVERLESS_MAX_PAGES = 10
SERVERLESS_MAX_CONCURRENCY = 3
LOCAL_MAX_PAGES = 30
LOCAL_MAX_CONCURRENCY = 5
DEFAULT_PORT = 9080

_TRUTHY = ("true", "1", "yes", "on")


@dataclass(frozen=True)
class ServiceConfig:
    """
    Read-only configuration of one service process.

    Attributes:
        serverless: True for the resource-constrained deployment profile.
        max_pages: Maximum number of HTML pages accepted per request.
        max_concurrency: Maximum number of pages rendered at the same time within one request.
        port: HTTP port of the service.
        chromium_executable_path: Optional Chromium binary to launch instead of the Playwright bundled one.
        service_version: Version string reported by / and /health.
    """

    serverless: bool = False
    max_pages: int = LOCAL_MAX_PAGES
    max_concurrency: int = LOCAL_MAX_CONCURRENCY
    port: int = DEFAULT_PORT
    chromium_executable_path: str | None = None
    service_version: str = "dev"

    @property
    def environment(self) -> str:
        return "serverless" if self.serverless else "local"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServiceConfig:
        """
        Build the configuration from environment variables.

        DEPLOYMENT_MODE (serverless|local) selects the profile; when it is not set,
        the presence of VERCEL or AWS_LAMBDA_FUNCTION_NAME selects the serverless one.
        MAX_PAGES and MAX_CONCURRENT_RENDERS override the profile limits.
        """
        env = os.environ if environ is None else environ

        serverless = _detect_serverless(env)
        default_pages = SERVERLESS_MAX_PAGES if serverless else LOCAL_MAX_PAGES
        default_concurrency = SERVERLESS_MAX_CONCURRENCY if serverless else LOCAL_MAX_CONCURRENCY

        config = cls(
            serverless=serverless,
            max_pages=_read_int(env, "MAX_PAGES", default_pages, 1, 100),
            max_concurrency=_read_int(env, "MAX_CONCURRENT_RENDERS", default_concurrency, 1, 20),
            port=_read_int(env, "PORT", DEFAULT_PORT, 1, 65535),
            chromium_executable_path=env.get("CHROMIUM_EXECUTABLE_PATH") or None,
            service_version=env.get("HTML2PDF_SERVICE_VERSION", "dev"),
        )
        logger.info(
            "Service configuration: environment=%s, max_pages=%d, max_concurrency=%d, port=%d",
            config.environment,
            config.max_pages,
            config.max_concurrency,
            config.port,
        )
        return config


def _detect_serverless(env: Mapping[str, str]) -> bool:
    mode = env.get("DEPLOYMENT_MODE", "").strip().lower()
    if mode in ("serverless", "local"):
        return mode == "serverless"
    if mode:
        logger.warning("Unknown DEPLOYMENT_MODE '%s', detecting from platform variables", mode)
    return bool(env.get("VERCEL")) or bool(env.get("AWS_LAMBDA_FUNCTION_NAME"))


def _read_int(env: Mapping[str, str], env_var: str, default: int, min_value: int, max_value: int) -> int:
    raw = env.get(env_var)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s', using default: %s", env_var, raw, default)
        return default
    if not (min_value <= value <= max_value):
        logger.warning("%s must be between %s and %s, using default: %s", env_var, min_value, max_value, default)
        return default
    return value


def is_enabled(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment flag (case-insensitive)."""
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


# Global singleton instance
_service_config: ServiceConfig | None = None


def get_service_config() -> ServiceConfig:
    """
    Get the process-wide ServiceConfig, reading the environment on first use.

    Note:
        This is intended for dependency injection in FastAPI endpoints.
    """
    global _service_config  # noqa: PLW0603
    if _service_config is None:
        _service_config = ServiceConfig.from_env()
    return _service_config
