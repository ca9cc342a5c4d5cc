"""Pydantic models for db.toml configuration."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from db_reconcile.dialects import Engine


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    engine: Engine | None = None  # Inferred from the URL when omitted
    schema_name: str | None = Field(default=None, alias="schema")

    model_config = ConfigDict(populate_by_name=True)


class SyncSettings(BaseModel):
    """Defaults for reconciliation and group checks."""

    batch_size: int = Field(default=500, ge=1, le=10000)
    max_workers: int = Field(default=4, ge=1)
    statement_timeout: float = Field(default=30, gt=0)


class GroupConfig(BaseModel):
    """Instance group: one source profile plus target profiles."""

    source: str
    targets: list[str] = Field(min_length=1)
    schema_name: str | None = Field(default=None, alias="schema")
    check_schema: bool = True
    check_data: bool = True

    model_config = ConfigDict(populate_by_name=True)


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    sync: SyncSettings = Field(default_factory=SyncSettings)
    groups: dict[str, GroupConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _groups_reference_profiles(self) -> "DatabaseConfig":
        for name, group in self.groups.items():
            for profile in [group.source, *group.targets]:
                if profile not in self.profiles:
                    raise ValueError(f"Group '{name}' references unknown profile '{profile}'")
        return self
