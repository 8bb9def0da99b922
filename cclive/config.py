"""Runtime configuration and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger("cclive")

DEFAULT_MAX_LINE_BYTES = 10 * 1024 * 1024


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class Settings:
    """Application configuration loaded from environment variables."""

    claude_dir: Path = field(default_factory=lambda: Path.home() / ".claude")
    projects_dir: Path | None = None
    host: str = "127.0.0.1"
    port: int = 5174
    watch_enabled: bool = True
    watch_debounce_ms: int = 500
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    project_filter: str | None = None
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @staticmethod
    def from_env() -> Settings:
        """Load settings from environment with CCLIVE_ prefix."""
        s = Settings()
        if v := os.environ.get("CCLIVE_CLAUDE_DIR"):
            s.claude_dir = Path(v).expanduser()
        if v := os.environ.get("CCLIVE_PROJECTS_DIR"):
            s.projects_dir = Path(v).expanduser()
        if v := os.environ.get("CCLIVE_HOST"):
            s.host = v
        if v := os.environ.get("CCLIVE_PORT"):
            s.port = int(v)
        if v := os.environ.get("CCLIVE_WATCH_ENABLED"):
            s.watch_enabled = _env_bool(v)
        if v := os.environ.get("CCLIVE_WATCH_DEBOUNCE_MS"):
            s.watch_debounce_ms = int(v)
        if v := os.environ.get("CCLIVE_MAX_LINE_BYTES"):
            s.max_line_bytes = int(v)
        if v := os.environ.get("CCLIVE_PROJECT"):
            s.project_filter = v
        if v := os.environ.get("CCLIVE_LOG_LEVEL"):
            s.log_level = v.upper()
        if v := os.environ.get("CCLIVE_CORS_ORIGINS"):
            s.cors_origins = [o.strip() for o in v.split(",")]
        return s

    def get_projects_dir(self) -> Path:
        if self.projects_dir:
            return self.projects_dir
        return self.claude_dir / "projects"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
