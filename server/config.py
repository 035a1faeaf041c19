"""Configuration for the PlayOps validator API server."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass
class Settings:
    """
    Everything the server needs to know at startup.

    Defaults resolve relative to the project root.
    Every field is overridable at construction for testing.
    """
    database_url: Optional[str] = None
    result_log_path: Optional[Path] = None
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])

    # Runtime defaults, used when a runtime omits them
    default_time_limit_s: float = 90.0
    default_edge_threshold: float = 0.80
    default_sessions_required: int = 3

    def __post_init__(self):
        project_root = Path(__file__).resolve().parent.parent

        if self.database_url is None:
            self.database_url = os.environ.get("DATABASE_URL", "sqlite:///./playops.db")

        if self.result_log_path is None:
            env_log = os.environ.get("RESULT_LOG_PATH")
            self.result_log_path = Path(env_log) if env_log else project_root / "results" / "session_results.jsonl"
        self.result_log_path = Path(self.result_log_path)

        if origins := os.environ.get("CORS_ORIGINS"):
            self.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

        env_limit = os.environ.get("DEFAULT_TIME_LIMIT_S")
        if env_limit is not None:
            try:
                self.default_time_limit_s = float(env_limit)
            except ValueError:
                pass
        env_edge = os.environ.get("DEFAULT_EDGE_THRESHOLD")
        if env_edge is not None:
            try:
                self.default_edge_threshold = float(env_edge)
            except ValueError:
                pass
        try:
            if v := os.environ.get("DEFAULT_SESSIONS_REQUIRED"):
                self.default_sessions_required = int(v)
        except ValueError:
            pass
