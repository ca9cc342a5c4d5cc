"""Configuration loading for db-reconcile."""

import os
import tomllib
from pathlib import Path

from db_reconcile.config.models import DatabaseConfig, DatabaseProfile, GroupConfig, SyncSettings

CONFIG_ENV_VAR = "DB_RECONCILE_CONFIG"


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ``$DB_RECONCILE_CONFIG``, else
            ``db.toml`` in the current working directory)

    Returns:
        DatabaseConfig with all profiles, sync settings, and groups

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path) if env_path else Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create db.toml with [profiles.<name>] sections, or set {CONFIG_ENV_VAR}."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    groups = {}
    for name, group_data in data.get("groups", {}).items():
        groups[name] = GroupConfig(**group_data)

    return DatabaseConfig(
        profiles=profiles,
        sync=SyncSettings(**data.get("sync", {})),
        groups=groups,
    )
