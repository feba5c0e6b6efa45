# Planner configuration
# Override via planner.yaml, PLANNER_* environment variables, or CLI args.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

from .errors import ConfigError
from .store import MemoryStore, PlannerStore, SqliteStore

CONFIG_PATH = Path("planner.yaml")
BACKENDS = ("memory", "sqlite")


@dataclass
class Config:
    """Runtime configuration for the planner service."""

    # Storage
    backend: str = "sqlite"
    db_path: str = "~/.local/share/planner/planner.db"

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 3000
    session_header: str = "X-Session-Token"

    log_level: str = "INFO"

    def resolve(self):
        """Apply environment overrides, expand ~ and validate."""
        self.backend = os.environ.get("PLANNER_BACKEND", self.backend).strip().lower()
        self.db_path = os.environ.get("PLANNER_DB", self.db_path)
        self.db_path = str(Path(self.db_path).expanduser())
        self.log_level = str(self.log_level).upper()

        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend '{self.backend}'. Available: {list(BACKENDS)}")
        try:
            self.port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid port: {self.port!r}")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path or os.environ.get("PLANNER_CONFIG") or CONFIG_PATH)
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg = cls()
        cfg.resolve()
        return cfg


def build_store(config: Config) -> PlannerStore:
    """Instantiate the configured storage backend."""
    if config.backend == "memory":
        return MemoryStore()
    return SqliteStore(config.db_path)
