"""Configuration for handoff-router.

Settings are read from ``~/.config/handoff-router/config.json`` when it
exists. ``HANDOFF_ROUTER_CONFIG_DIR`` moves the whole configuration
directory (config file, rules, settings and preferences), and ``LOG_LEVEL``
overrides the configured log level.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import HandoffError
from .models import ProfileDescriptor
from .persistence import PreferenceStore, SettingsStore
from .services.rule_store import RuleStore

logger = logging.getLogger(__name__)


CONFIG_DIR_ENV = "HANDOFF_ROUTER_CONFIG_DIR"
LOG_LEVEL_ENV = "LOG_LEVEL"
CONFIG_FILENAME = "config.json"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_config_dir() -> Path:
    return Path.home() / ".config" / "handoff-router"


class ConfigError(HandoffError):
    """The configuration file is unreadable or invalid."""


class RouterConfig(BaseModel):
    """Runtime configuration."""

    config_dir: Path = Field(default_factory=default_config_dir, description="Directory holding all state files")
    request_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds before a backend call is abandoned; None waits indefinitely"
    )
    history_limit: int = Field(default=50, ge=1, description="Launch history entries kept")
    log_level: str = Field(default="WARNING", description="Log level when neither --verbose nor --debug is given")
    browsers: Dict[str, List[ProfileDescriptor]] = Field(
        default_factory=dict,
        description="Installed browsers and their profiles"
    )

    @field_validator("config_dir", mode="before")
    @classmethod
    def expand_config_dir(cls, v):
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        return level

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    @property
    def rules_file(self) -> Path:
        return self.config_dir / RuleStore.FILENAME

    @property
    def settings_file(self) -> Path:
        return self.config_dir / SettingsStore.FILENAME

    @property
    def preferences_file(self) -> Path:
        return self.config_dir / PreferenceStore.FILENAME


def load_config(config_dir: Optional[Path] = None) -> RouterConfig:
    """Load configuration, applying environment overrides.

    Args:
        config_dir: Configuration directory; defaults to
            ``$HANDOFF_ROUTER_CONFIG_DIR`` or ``~/.config/handoff-router``

    Returns:
        The loaded configuration (defaults when no config file exists)

    Raises:
        ConfigError: If the config file exists but is invalid
    """
    if config_dir is None:
        env_dir = os.environ.get(CONFIG_DIR_ENV)
        config_dir = Path(env_dir).expanduser() if env_dir else default_config_dir()
    config_dir = Path(config_dir)

    data: Dict = {}
    config_file = config_dir / CONFIG_FILENAME
    if config_file.exists():
        try:
            with config_file.open("r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Failed to read {config_file}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"{config_file} must contain a JSON object")
        logger.debug(f"Loaded configuration from {config_file}")

    data["config_dir"] = config_dir

    env_level = os.environ.get(LOG_LEVEL_ENV)
    if env_level:
        data["log_level"] = env_level

    try:
        return RouterConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}")
