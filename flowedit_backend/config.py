"""
Backend settings, read from environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173"


def _env_path(name: str) -> Optional[Path]:
    value = os.environ.get(name)
    return Path(value) if value else None


@dataclass
class Settings:
    max_history: int = 100
    render_delay: float = 0.3   # seconds of quiet before re-rendering
    state_file: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = 8765
    cors_origins: list[str] = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FLOWEDIT_* variables, falling back to defaults."""
        origins = os.environ.get("FLOWEDIT_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
        return cls(
            max_history=int(os.environ.get("FLOWEDIT_MAX_HISTORY", "100")),
            render_delay=float(os.environ.get("FLOWEDIT_RENDER_DELAY", "0.3")),
            state_file=_env_path("FLOWEDIT_STATE_FILE"),
            host=os.environ.get("FLOWEDIT_HOST", "127.0.0.1"),
            port=int(os.environ.get("FLOWEDIT_PORT", "8765")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
