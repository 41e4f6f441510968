"""Resolve uploader configuration from defaults, environment, and CLI overrides."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from chunked_uploader.config_manager.helpers import parse_bytes
from chunked_uploader.config_manager.upload_config import UploadConfig

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "server_url": "CHUNKUP_SERVER_URL",
    "chunk_size": "CHUNKUP_CHUNK_SIZE",
    "parallel_uploads": "CHUNKUP_PARALLEL_UPLOADS",
    "resumable": "CHUNKUP_RESUMABLE",
    "max_retries": "CHUNKUP_MAX_RETRIES",
    "connect_timeout": "CHUNKUP_CONNECT_TIMEOUT",
    "receive_timeout": "CHUNKUP_RECEIVE_TIMEOUT",
}

YES_CONFIRMATION = {"1", "true", "yes", "y"}


def _parse_flag(value: str) -> bool:
    return value.strip().lower() in YES_CONFIRMATION


_ENV_PARSERS: dict[str, Callable[[str], Any]] = {
    "chunk_size": parse_bytes,
    "parallel_uploads": int,
    "resumable": _parse_flag,
    "max_retries": int,
    "connect_timeout": float,
    "receive_timeout": float,
}


class ConfigManager:
    """Build effective uploader configuration from env and CLI overrides."""

    def __init__(self, base_config: UploadConfig | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            base_config: Configuration to layer overrides on top of. Defaults
                to ``UploadConfig()``.
        """
        self.base_config = base_config or UploadConfig()

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            parser = _ENV_PARSERS.get(field_name, str)
            try:
                overrides[field_name] = parser(env_value)
            except ValueError:
                logger.warning(
                    f"Ignoring invalid value {env_value!r} for {env_var_name}"
                )

        return overrides

    def resolve_effective_config(
        self, cli_config: dict[str, Any] | None = None
    ) -> UploadConfig:
        """Resolve the effective configuration for this run.

        Args:
            cli_config: Optional CLI-provided overrides. ``None`` values are
                treated as "not given".

        Returns:
            The resolved ``UploadConfig``, validated.
        """
        merged = self.base_config.model_dump()
        merged.update(self._read_env_overrides())

        if cli_config is not None:
            merged.update({k: v for k, v in cli_config.items() if v is not None})

        return UploadConfig.model_validate(merged)
