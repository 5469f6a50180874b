"""Process-wide static configuration.

Read once from the environment at startup and shared read-only by every
invocation cycle.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

API_VERSION = "2018-06-01"

# Environment variable names set by the platform
ENV_FUNCTION_NAME = "AWS_LAMBDA_FUNCTION_NAME"
ENV_FUNCTION_VERSION = "AWS_LAMBDA_FUNCTION_VERSION"
ENV_MEMORY_SIZE = "AWS_LAMBDA_FUNCTION_MEMORY_SIZE"
ENV_LOG_GROUP_NAME = "AWS_LAMBDA_LOG_GROUP_NAME"
ENV_LOG_STREAM_NAME = "AWS_LAMBDA_LOG_STREAM_NAME"
ENV_TASK_ROOT = "LAMBDA_TASK_ROOT"
ENV_HANDLER = "_HANDLER"
ENV_RUNTIME_API = "AWS_LAMBDA_RUNTIME_API"


def normalize_base_url(runtime_api: str) -> str:
    """Turn the platform's runtime API address into a base URL.

    The platform hands out ``host:port`` without a scheme.

    Args:
        runtime_api: Address as found in the environment

    Returns:
        Base URL with a scheme and without a trailing slash
    """
    base = runtime_api.strip().rstrip("/")
    if "://" not in base:
        base = f"http://{base}"
    return base


@dataclass(frozen=True)
class RuntimeConfig:
    """Static configuration of the function being hosted."""

    handler: str
    runtime_api: str
    function_name: str = ""
    function_version: str = ""
    memory_limit_in_mb: str = ""
    log_group_name: str = ""
    log_stream_name: str = ""
    task_root: Path = Path(".")

    @property
    def base_url(self) -> str:
        """Control-plane base URL including scheme."""
        return normalize_base_url(self.runtime_api)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RuntimeConfig:
        """Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError: If the handler or runtime API address is unset
        """
        env = os.environ if environ is None else environ

        missing = [name for name in (ENV_HANDLER, ENV_RUNTIME_API) if not env.get(name)]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        return cls(
            handler=env[ENV_HANDLER],
            runtime_api=env[ENV_RUNTIME_API],
            function_name=env.get(ENV_FUNCTION_NAME, ""),
            function_version=env.get(ENV_FUNCTION_VERSION, ""),
            memory_limit_in_mb=env.get(ENV_MEMORY_SIZE, ""),
            log_group_name=env.get(ENV_LOG_GROUP_NAME, ""),
            log_stream_name=env.get(ENV_LOG_STREAM_NAME, ""),
            task_root=Path(env.get(ENV_TASK_ROOT) or os.getcwd()),
        )
