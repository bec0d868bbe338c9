"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "TICTACTOE_"


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    database_url: str = "sqlite:///./tictactoe.db"
    # Base URL used for shareable game links; resolved per request when unset.
    public_url: Optional[str] = None
    log_level: str = "INFO"
    poll_interval_ms: int = 1000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str, default: str) -> str:
            return env.get(ENV_PREFIX + name, default)

        public_url = get("PUBLIC_URL", "").strip().rstrip("/")
        return cls(
            host=get("HOST", cls.host),
            port=int(get("PORT", str(cls.port))),
            database_url=get("DATABASE_URL", cls.database_url),
            public_url=public_url or None,
            log_level=get("LOG_LEVEL", cls.log_level).upper(),
            poll_interval_ms=int(get("POLL_INTERVAL_MS", str(cls.poll_interval_ms))),
        )
