# Taskboard configuration
# Override via config.yaml, environment variables or CLI args.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

CONFIG_PATH = Path(__file__).parent / "config.yaml"


@dataclass
class Config:
    """Runtime configuration for the board store."""

    # Storage
    db_path: str = "~/.local/share/taskboard/board.db"
    key_prefix: str = "kanban_"

    # Sessions
    token_secret: str = "dev-secret-change-me-taskboard-local"
    token_ttl_secs: int = 3600
    enforce_token_expiry: bool = False  # expiry is informational unless set

    # Identity (placeholder scheme, not cryptographically sound)
    password_salt: str = "salt123"

    # Sync
    watch_debounce_ms: int = 150

    # Logging
    log_level: str = "WARNING"

    def resolve_paths(self):
        """Apply environment overrides and expand ~."""
        env_db = os.environ.get("TASKBOARD_DB")
        if env_db:
            self.db_path = env_db
        env_secret = os.environ.get("TASKBOARD_TOKEN_SECRET")
        if env_secret:
            self.token_secret = env_secret
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except Exception:
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg
