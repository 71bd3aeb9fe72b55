"""
Configuration for the XPP MCP server.

All tunables live on a single IndexConfig object. The process environment is
read once at bootstrap by IndexConfig.from_env(); every component receives
the resulting object instead of reading environment variables itself.

Environment variables:
    DB_PATH: SQLite database file (default: ./data/xpp-metadata.db)
    METADATA_PATH: Root directory of extracted metadata (model directories)
    CUSTOM_MODELS: Comma-separated custom model names, wildcards allowed
        (e.g., "Asl*,*Test,ContosoCore")
    EXTENSION_PREFIX: Prefix of custom extension objects (e.g., "ISV_")
    REDIS_URL: Redis connection URL (default: redis://localhost:6379)
    REDIS_ENABLED: "false" disables the cache entirely
    REDIS_TIMEOUT: Socket timeout for Redis calls, in seconds
    CACHE_TTL_SHORT / CACHE_TTL_MEDIUM / CACHE_TTL_LONG: Tier TTLs in seconds
    XPP_MAX_WORKERS: Thread count for parsing and batch search
"""

import fnmatch
import os
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from xpp_mcp.core.exceptions import ConfigurationError


class IndexConfig(BaseModel):
    """Runtime configuration shared by the store, cache and service.

    Attributes:
        db_path: Path to the SQLite symbol database.
        metadata_path: Default root for indexing passes, if any.
        custom_models: Custom model names; entries may contain ``*``.
        extension_prefix: Name prefix marking custom extension objects.
        redis_url: Redis connection URL.
        redis_enabled: False turns every cache call into a no-op.
        redis_timeout: Socket timeout (seconds) for each Redis call.
        ttl_short: Search result lifetime (seconds).
        ttl_medium: Pattern analysis lifetime (seconds).
        ttl_long: Class/table structure and completion lifetime (seconds).
        fuzzy_sample: Maximum number of keys scanned by a fuzzy cache lookup.
        default_limit: Result limit used when a caller passes none.
        max_workers: Worker threads for parsing; None picks CPU count - 1.
    """

    db_path: Path = Path("data/xpp-metadata.db")
    metadata_path: Optional[Path] = None
    custom_models: List[str] = Field(default_factory=list)
    extension_prefix: str = ""
    redis_url: str = "redis://localhost:6379"
    redis_enabled: bool = True
    redis_timeout: float = Field(default=1.0, gt=0)
    ttl_short: int = Field(default=1800, gt=0)
    ttl_medium: int = Field(default=7200, gt=0)
    ttl_long: int = Field(default=86400, gt=0)
    fuzzy_sample: int = Field(default=100, ge=0)
    default_limit: int = Field(default=20, ge=1)
    max_workers: Optional[int] = Field(default=None, ge=1)

    @field_validator("custom_models")
    @classmethod
    def _strip_models(cls, value: List[str]) -> List[str]:
        return [m.strip() for m in value if m and m.strip()]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IndexConfig":
        """Build a configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values = {}
        if env.get("DB_PATH"):
            values["db_path"] = env["DB_PATH"]
        if env.get("METADATA_PATH"):
            values["metadata_path"] = env["METADATA_PATH"]
        if env.get("CUSTOM_MODELS"):
            values["custom_models"] = env["CUSTOM_MODELS"].split(",")
        if env.get("EXTENSION_PREFIX"):
            values["extension_prefix"] = env["EXTENSION_PREFIX"]
        if env.get("REDIS_URL"):
            values["redis_url"] = env["REDIS_URL"]
        if env.get("REDIS_ENABLED"):
            values["redis_enabled"] = env["REDIS_ENABLED"].strip().lower() not in ("0", "false", "no", "off")
        if env.get("REDIS_TIMEOUT"):
            values["redis_timeout"] = env["REDIS_TIMEOUT"]
        for tier in ("short", "medium", "long"):
            raw = env.get(f"CACHE_TTL_{tier.upper()}")
            if raw:
                values[f"ttl_{tier}"] = raw
        if env.get("XPP_MAX_WORKERS"):
            values["max_workers"] = env["XPP_MAX_WORKERS"]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def is_custom_model(self, model: str) -> bool:
        """Return True if ``model`` is a custom (non-standard) model.

        A model is custom when it matches one of ``custom_models``
        (case-insensitive, ``*`` wildcards) or starts with the extension
        prefix.
        """
        if not model:
            return False
        lowered = model.lower()
        for pattern in self.custom_models:
            if fnmatch.fnmatchcase(lowered, pattern.lower()):
                return True
        return bool(self.extension_prefix) and model.startswith(self.extension_prefix)

    def filter_models(self, models: List[str], custom: bool = True) -> List[str]:
        """Keep the custom models (or the standard ones when ``custom`` is False)."""
        return [m for m in models if self.is_custom_model(m) == custom]
