"""
statevault - Configuration

Loads config from:
  1. Defaults
  2. Global config (CLI --config or ~/.statevault/config.json)
  3. Workspace override (<workspace>/.statevault/config.json)
  4. Environment variables

Relative paths in the result are resolved against the workspace, so the
ledger, blob store and keys of a workspace travel with it.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

WORKSPACE_DIR = ".statevault"
CONFIG_NAME = "config.json"

DEFAULT_CONFIG = {
    "account": None,
    "collection": None,
    "ledger": {
        "path": ".statevault/ledger.json",
    },
    "storage": {
        "root": ".statevault/blobs",
    },
    "keys": {
        "dir": ".statevault/keys",
    },
    "lineage": {
        "max_depth": 10000,
    },
    "log_level": "WARNING",
}

_PATH_KEYS = (("ledger", "path"), ("storage", "root"), ("keys", "dir"))


def workspace_config_path(workspace: Path) -> Path:
    return Path(workspace) / WORKSPACE_DIR / CONFIG_NAME


def load_config(config_path: Optional[Path] = None, workspace: Optional[Path] = None) -> dict:
    """Load statevault config.

    `config_path` (CLI --config) is treated as the global user config layer.
    If absent, $STATEVAULT_HOME/config.json (default ~/.statevault) is used.

    If `workspace` is provided, <workspace>/.statevault/config.json is loaded
    as a workspace-specific override on top of the global layer.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Tests must not depend on a real user config existing on disk.
    is_pytest = bool(os.environ.get("PYTEST_CURRENT_TEST"))

    home = os.environ.get("STATEVAULT_HOME")
    default_global_path = (Path(home) if home else Path.home() / WORKSPACE_DIR) / CONFIG_NAME

    global_path = Path(config_path) if config_path else default_global_path
    if is_pytest and config_path is None:
        global_path = None
    if global_path is not None and global_path.exists():
        global_cfg = _read_json(global_path)
        if global_cfg:
            config = _merge(config, global_cfg)
            logger.debug("config loaded from %s", global_path)

    if workspace:
        ws_config_path = workspace_config_path(workspace)
        if ws_config_path.exists():
            ws_cfg = _read_json(ws_config_path)
            if ws_cfg:
                config = _merge(config, ws_cfg)
                logger.debug("config loaded from %s", ws_config_path)

    _apply_env_overrides(config)
    _resolve_paths(config, Path(workspace) if workspace else Path.cwd())
    return config


def save_workspace_config(workspace: Path, values: dict) -> Path:
    """Merge ``values`` into the workspace config file and write it back."""
    path = workspace_config_path(workspace)
    current = _read_json(path) if path.exists() else {}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(_merge(current, values), indent=2, sort_keys=True))
    return path


def _read_json(path: Path) -> dict:
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("could not read config %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring config %s: top level must be an object", path)
        return {}
    return data


def _merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict) -> None:
    """Apply explicit env var overrides after file/default loading."""
    account = os.environ.get("STATEVAULT_ACCOUNT")
    if account:
        config["account"] = account.strip()

    log_level = os.environ.get("STATEVAULT_LOG_LEVEL")
    if log_level:
        config["log_level"] = log_level.strip().upper()

    max_depth = os.environ.get("STATEVAULT_MAX_DEPTH")
    if max_depth:
        try:
            config.setdefault("lineage", {})["max_depth"] = int(max_depth)
        except ValueError:
            logger.warning("invalid STATEVAULT_MAX_DEPTH=%r", max_depth)


def _resolve_paths(config: dict, base: Path) -> None:
    for section, key in _PATH_KEYS:
        raw = config.get(section, {}).get(key)
        if not raw:
            continue
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = base / path
        config[section][key] = str(path)
