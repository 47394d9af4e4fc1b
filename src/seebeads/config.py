"""Configuration module for seebeads settings.

Settings come from ``SEEBEADS_*`` environment variables or a ``.env`` file.
The discovery helpers locate a project's ``.beads`` directory and the data
file inside it; the core never writes there.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .bead_schemas import SourceFormat
from .exceptions import SourceError

BEADS_DIR_NAME = ".beads"
SQLITE_FILE_NAME = "beads.db"
JSONL_FILE_NAME = "beads.jsonl"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SEEBEADS_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    host: str = "127.0.0.1"
    port: int = 3456

    # Explicit data file; discovered from the working directory when empty
    beads_path: str = ""
    source_format: Optional[SourceFormat] = None

    agent_mode: bool = False
    no_watch: bool = False
    debounce_seconds: float = 0.1
    agent_debounce_seconds: float = 2.0

    heartbeat_interval_seconds: float = 30.0
    subscriber_buffer: int = 64
    broadcast_buffer: int = 256

    default_page_limit: int = 100
    log_level: str = "INFO"

    @field_validator("port")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if value < 1 or value > 65535:
            raise ValueError(f"invalid port: {value}")
        return value

    @field_validator("debounce_seconds", "agent_debounce_seconds", "heartbeat_interval_seconds")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("interval must be positive")
        return value

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def url(self) -> str:
        return f"http://{self.address}"


def get_settings() -> Settings:
    """Load settings fresh from the environment."""
    return Settings()


def find_beads_dir(start: Optional[Path] = None) -> Path:
    """
    Search for a ``.beads`` directory from ``start`` up to the filesystem root.

    Raises:
        SourceError: If no ``.beads`` directory exists on the way up
    """
    start = (start or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / BEADS_DIR_NAME
        if candidate.is_dir():
            return candidate
    raise SourceError(f"no {BEADS_DIR_NAME} directory found in {start} or any parent directory")


def find_data_path(beads_dir: Path) -> Tuple[Path, SourceFormat]:
    """
    Pick the data file inside a ``.beads`` directory.

    Prefers the SQLite database (newer beads versions) over JSONL.

    Raises:
        SourceError: If neither file exists
    """
    db_path = beads_dir / SQLITE_FILE_NAME
    if db_path.is_file():
        return db_path, SourceFormat.SQLITE

    jsonl_path = beads_dir / JSONL_FILE_NAME
    if jsonl_path.is_file():
        return jsonl_path, SourceFormat.JSONL

    raise SourceError(
        f"no {SQLITE_FILE_NAME} or {JSONL_FILE_NAME} found in {beads_dir} - run 'bd init' first",
        path=str(beads_dir),
    )


def resolve_source(settings: Settings) -> Tuple[Path, SourceFormat]:
    """Resolve the configured source, discovering it when not set explicitly."""
    from .parsers import detect_source_format

    if settings.beads_path:
        path = Path(settings.beads_path)
        if path.is_dir():
            return find_data_path(path)
        if not path.exists():
            raise SourceError(f"beads path not found: {path}", path=str(path))
        return path, settings.source_format or detect_source_format(path)

    return find_data_path(find_beads_dir())
