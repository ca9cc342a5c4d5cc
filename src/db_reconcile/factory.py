"""Connector factory.

Resolves db.toml profiles into ready ``SqlConnector`` instances.  Callers
(the CLI, services) hand connectors to the operations; the operations
never see raw credentials.
"""

from urllib.parse import quote

from db_reconcile.adapters import SqlConnector, detect_engine
from db_reconcile.config import load_db_config
from db_reconcile.config.models import DatabaseConfig, DatabaseProfile
from db_reconcile.dialects import default_schema


class ProfileNotFoundError(Exception):
    """Raised when a profile or group name is not in db.toml."""

    pass


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_profile(profile_name: str, config: DatabaseConfig) -> DatabaseProfile:
    """Look up a profile by name.

    Raises:
        ProfileNotFoundError: If the profile is not configured
    """
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles) or "none"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {available}"
        )
    return config.profiles[profile_name]


def profile_schema(profile: DatabaseProfile) -> str:
    """Schema to use for *profile*: its ``schema`` setting or the engine default.

    MySQL and MariaDB default to the database named in the URL.
    """
    if profile.schema_name:
        return profile.schema_name
    url = resolve_url(profile)
    engine = profile.engine or detect_engine(url)
    database = url.rsplit("/", 1)[-1].split("?", 1)[0] or None
    return default_schema(engine, database)


def get_connector(profile_name: str, config: DatabaseConfig | None = None) -> SqlConnector:
    """Build a connector for a db.toml profile.

    The connector is not connected yet; connections open lazily on first
    use (or explicitly via ``await connector.connect()``).

    Args:
        profile_name: Profile name from db.toml
        config: Loaded configuration (default: ``load_db_config()``)

    Raises:
        ProfileNotFoundError: If the profile is not configured

    Example:
        >>> connector = get_connector("local")
        >>> result = await connector.test_connection()
    """
    if config is None:
        config = load_db_config()
    profile = get_profile(profile_name, config)
    return SqlConnector(
        resolve_url(profile),
        name=profile_name,
        engine=profile.engine,
        statement_timeout=config.sync.statement_timeout,
    )
