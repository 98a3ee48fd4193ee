import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so env vars are available for YAML interpolation
_env_file = Path(__file__).parent.parent / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Location of app.yaml, overridable with PAGECRAFT_CONFIG."""
    override = os.environ.get("PAGECRAFT_CONFIG")
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config() -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./pagecraft.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    pool_pre_ping: bool = False
    echo: bool = False
    # Create missing tables on startup instead of running migrations
    create_all: bool = False


class DesignerConfig(BaseModel):
    """Tunables for the page designer."""

    # Gap left between siblings when orders are renumbered
    order_step: int = 1024
    default_column_span: int = 12
    max_versions_listed: int | None = None


class TemplateDefinition(BaseModel):
    """Component template declared in app.yaml and synced into the catalog."""

    type: str
    display_name: str
    category: str = "general"
    allow_children: bool = False
    default_column_span: int = 12
    default_properties: dict = {}
    default_styles: dict = {}
    default_settings: dict = {}
    description: str | None = None
    icon: str | None = None
    sort_order: int = 0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAGECRAFT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "INFO"

    db: DatabaseConfig = DatabaseConfig()
    designer: DesignerConfig = DesignerConfig()
    templates: list[TemplateDefinition] = []


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    updates = {}

    if "db" in app_config:
        updates["db"] = DatabaseConfig(**app_config["db"])

    if "designer" in app_config:
        updates["designer"] = DesignerConfig(**app_config["designer"])

    if "templates" in app_config:
        updates["templates"] = [TemplateDefinition(**t) for t in app_config["templates"] or []]

    for key in ("debug", "log_level"):
        if key in app_config:
            updates[key] = app_config[key]

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings
