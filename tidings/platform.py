"""
Tidings Platform Abstraction
----------------------------
Cross-platform path resolution for the local data, config and log directories.

Resolution order for every directory:
    1. TIDINGS_*_DIR environment variable override
    2. platformdirs user directory for the "tidings" application
"""

import os
from pathlib import Path

import platformdirs


_APP_NAME = "tidings"
_APP_AUTHOR = "Tidings"


def _resolve_dir(env_var: str, platformdirs_fn: str) -> Path:
    env_val = os.environ.get(env_var)
    if env_val:
        return Path(env_val)
    fn = getattr(platformdirs, platformdirs_fn)
    return Path(fn(_APP_NAME, _APP_AUTHOR))


def get_data_dir() -> Path:
    """
    Get the Tidings data directory.

    Priority: TIDINGS_DATA_DIR env var > platformdirs.
    Contains: records.db, vectors/, sync_state.json
    """
    return _resolve_dir("TIDINGS_DATA_DIR", "user_data_dir")


def get_config_dir() -> Path:
    """Get the Tidings configuration directory (config.yaml lives here)."""
    return _resolve_dir("TIDINGS_CONFIG_DIR", "user_config_dir")


def get_log_dir() -> Path:
    """Get the Tidings log directory."""
    return _resolve_dir("TIDINGS_LOG_DIR", "user_log_dir")

