"""Load SyncConfig from ledgerline.yaml if present.

Merges file config, environment credentials, and keyword overrides.
Overrides take precedence over the environment, which takes precedence
over the file.
"""

from __future__ import annotations

import os
from pathlib import Path

from ledgerline.config import SyncConfig

_CONFIG_KEYS = frozenset({
    "supabase_url", "supabase_key", "schema", "channel_prefix",
    "subscribe_timeout", "coalesce_refetch", "min_refetch_interval",
    "reconcile_on_reconnect", "max_events", "host", "port",
})

_ENV_KEYS = {
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
}


def load_config(root: Path, **overrides: object) -> SyncConfig:
    """Load SyncConfig from root, optionally merging ledgerline.yaml.

    Looks for ledgerline.yaml, ledgerline.yml, or ledgerline.toml in root.
    ``SUPABASE_URL`` and ``SUPABASE_KEY`` from the environment fill in
    credentials.  Overrides whose value is None are ignored so CLI flags
    left at their defaults do not mask file values.
    """
    file_config = _read_config_file(root)
    env_config = _read_env()
    explicit = {k: v for k, v in overrides.items() if v is not None}
    merged = {**file_config, **env_config, **explicit}
    return SyncConfig(root=root, **merged)


def _read_env() -> dict[str, object]:
    """Read credentials from the environment."""
    result: dict[str, object] = {}
    for env_name, key in _ENV_KEYS.items():
        value = os.environ.get(env_name)
        if value:
            result[key] = value
    return result


def _read_config_file(root: Path) -> dict[str, object]:
    """Read config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("ledgerline.yaml", "ledgerline.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "ledgerline.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    """Parse YAML config. Returns empty dict on error."""
    import yaml

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return {}
    if not isinstance(data, dict):
        return {}
    return _flatten_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    """Parse TOML config. Returns empty dict on error."""
    import tomllib

    try:
        data = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError):
        return {}
    return _flatten_section(data)


def _flatten_section(data: dict[str, object]) -> dict[str, object]:
    """Extract ledgerline.* keys into top-level config, dropping unknown keys."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k in _CONFIG_KEYS:
            result[k] = v
    section = data.get("ledgerline")
    if isinstance(section, dict):
        for k, v in section.items():
            if k in _CONFIG_KEYS:
                result[k] = v
    return result
