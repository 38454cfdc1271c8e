"""Configuration management for notetree."""

import json
import os
from pathlib import Path
from typing import Any, List, Literal, Optional

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from notetree.schemas.tree import SortPolicy
from notetree.utils import setup_logging

DATA_DIR_NAME = ".notetree"
CONFIG_FILE_NAME = "config.json"

Environment = Literal["test", "dev", "user"]


def _default_home() -> str:
    return str(Path(os.getenv("NOTETREE_HOME", Path.home() / "notes")))


class NoteTreeConfig(BaseSettings):
    """Pydantic model for notetree global configuration."""

    env: Environment = Field(default="dev", description="Environment name")

    home: str = Field(
        default_factory=_default_home,
        description="Root directory holding the notes. Every note path is relative to it.",
    )

    note_extension: str = Field(
        default=".md",
        description="Extension appended to new notes created without one",
    )

    ignore_patterns: List[str] = Field(
        default_factory=lambda: [".git"],
        description="Glob patterns for entry names hidden from the tree and reserved on create",
    )

    default_sort: SortPolicy = Field(
        default=SortPolicy.NAME_ASC,
        description="Sort policy used when listing the tree without an explicit one",
    )

    new_note_heading: bool = Field(
        default=False,
        description="Start new notes with a '# <name>' heading instead of an empty file",
    )

    # Git sync configuration
    git_executable: str = Field(default="git", description="git binary to invoke")
    git_remote_name: str = Field(default="origin", description="Remote used for push and pull")
    git_remote_url: Optional[str] = Field(default=None, description="URL of the sync remote")
    git_branch: Optional[str] = Field(
        default=None,
        description="Branch to push and pull. Defaults to the currently checked-out branch.",
    )
    git_timeout: float = Field(
        default=60.0,
        description="Seconds before a git command is killed",
        gt=0,
    )
    default_commit_message: str = Field(
        default="Update notes",
        description="Commit message used by sync when none is given",
    )

    # overridden by ~/.notetree/config.json
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="NOTETREE_",
        extra="ignore",
    )

    @field_validator("note_extension")
    @classmethod
    def validate_note_extension(cls, value: str) -> str:
        if not value.startswith(".") or len(value) < 2 or "/" in value or "\\" in value:
            raise ValueError(f"note_extension must look like '.md', got {value!r}")
        return value

    @model_validator(mode="after")
    def ensure_home_exists(self) -> "NoteTreeConfig":  # pragma: no cover
        """Create the note root when it does not exist yet."""
        path = Path(self.home).expanduser()
        if not path.exists():
            try:
                path.mkdir(parents=True)
            except Exception as e:
                logger.error(f"Failed to create note root: {e}")
                raise e
        return self

    @property
    def home_path(self) -> Path:
        return Path(self.home).expanduser()

    @property
    def data_dir_path(self) -> Path:
        """Get app state directory for config and logs."""
        if config_dir := os.getenv("NOTETREE_CONFIG_DIR"):
            return Path(config_dir)

        home = os.getenv("HOME", Path.home())
        return Path(home) / DATA_DIR_NAME


# Module-level cache for configuration
_CONFIG_CACHE: Optional[NoteTreeConfig] = None


class ConfigManager:
    """Manages notetree configuration."""

    def __init__(self) -> None:
        home = os.getenv("HOME", Path.home())
        if isinstance(home, str):
            home = Path(home)

        # Allow override via environment variable
        if config_dir := os.getenv("NOTETREE_CONFIG_DIR"):
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = home / DATA_DIR_NAME

        self.config_file = self.config_dir / CONFIG_FILE_NAME

        # Ensure config directory exists
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config(self) -> NoteTreeConfig:
        """Get configuration, loading it lazily if needed."""
        return self.load_config()

    def load_config(self) -> NoteTreeConfig:
        """Load configuration from file or create default.

        Environment variables take precedence over file config values.
        Uses module-level cache across ConfigManager instances.
        """
        global _CONFIG_CACHE

        if _CONFIG_CACHE is not None:
            return _CONFIG_CACHE

        if self.config_file.exists():
            try:
                file_data = json.loads(self.config_file.read_text(encoding="utf-8"))

                # Overlay env-set fields on top of the file values
                env_dict = NoteTreeConfig().model_dump()
                merged_data = file_data.copy()
                for field_name in NoteTreeConfig.model_fields.keys():
                    if f"NOTETREE_{field_name.upper()}" in os.environ:
                        merged_data[field_name] = env_dict[field_name]

                _CONFIG_CACHE = NoteTreeConfig(**merged_data)
                return _CONFIG_CACHE
            except json.JSONDecodeError as e:  # pragma: no cover
                logger.error(f"Invalid JSON in config file {self.config_file}: {e}")
                raise SystemExit(
                    f"Error: config file is not valid JSON: {self.config_file}\n"
                    f"  {e}\n"
                    f"Fix or delete the file and re-run."
                )
            except Exception as e:  # pragma: no cover
                logger.error(f"Failed to load config from {self.config_file}: {e}")
                raise SystemExit(
                    f"Error: failed to load config from {self.config_file}\n"
                    f"  {e}\n"
                    f"Fix or delete the file and re-run."
                )
        else:
            config = NoteTreeConfig()
            self.save_config(config)
            return config

    def save_config(self, config: NoteTreeConfig) -> None:
        """Save configuration to file and invalidate cache."""
        global _CONFIG_CACHE
        save_notetree_config(self.config_file, config)
        _CONFIG_CACHE = None

    def set_remote(self, url: str, branch: Optional[str] = None) -> NoteTreeConfig:
        config = self.load_config()
        config.git_remote_url = url
        if branch is not None:
            config.git_branch = branch
        self.save_config(config)
        return self.load_config()


def save_notetree_config(file_path: Path, config: NoteTreeConfig) -> None:
    """Save configuration to file."""
    try:
        config_dict: dict[str, Any] = config.model_dump(mode="json")
        file_path.write_text(json.dumps(config_dict, indent=2))
    except Exception as e:  # pragma: no cover
        logger.error(f"Failed to save config: {e}")


def init_cli_logging() -> None:  # pragma: no cover
    """Initialize logging for CLI commands - file only.

    CLI commands should not log to stdout to avoid interfering with
    command output and shell integration.
    """
    log_level = os.getenv("NOTETREE_LOG_LEVEL", "INFO")
    setup_logging(log_level=log_level, log_to_file=True)
