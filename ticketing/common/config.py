"""
Shared configuration

Each service's main.py builds settings once from the environment and passes
them down explicitly. Nothing below main.py reads os.environ.
"""

import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./ticketing.db"
    redis_url: str = "redis://localhost:6379"
    stream_prefix: str = "ticketing"
    scoring_url: str | None = None
    scoring_timeout: float = 10.0
    notify_webhook_url: str | None = None
    alert_email: str = "ops-alerts@ticketing.local"
    batch_size: int = 10
    max_deliveries: int = 5
    visibility_timeout_ms: int = 30_000
    alert_dedupe_ttl: int = 86_400
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            database_url=env.get("DATABASE_URL", cls.database_url),
            redis_url=env.get("REDIS_URL", cls.redis_url),
            stream_prefix=env.get("STREAM_PREFIX", cls.stream_prefix),
            scoring_url=env.get("SCORING_URL") or None,
            scoring_timeout=float(env.get("SCORING_TIMEOUT", cls.scoring_timeout)),
            notify_webhook_url=env.get("NOTIFY_WEBHOOK_URL") or None,
            alert_email=env.get("ALERT_EMAIL", cls.alert_email),
            batch_size=int(env.get("BATCH_SIZE", cls.batch_size)),
            max_deliveries=int(env.get("MAX_DELIVERIES", cls.max_deliveries)),
            visibility_timeout_ms=int(
                env.get("VISIBILITY_TIMEOUT_MS", cls.visibility_timeout_ms)
            ),
            alert_dedupe_ttl=int(env.get("ALERT_DEDUPE_TTL", cls.alert_dedupe_ttl)),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the root logger."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
        force=True,
    )
