from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# DB SQLite su file nella root del progetto
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "clinic.db"
DEFAULT_DATABASE_URL = f"sqlite:///{DEFAULT_DB_PATH}"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    sql_echo: bool = False

    # In produzione: mettila in variabile d'ambiente
    jwt_secret: str = "CHANGE_ME_DEV_SECRET"
    jwt_expire_minutes: int = 60

    google_client_id: str | None = None
    google_client_secret: str | None = None

    # 0 = notifiche inviate inline (CLI, test)
    notify_workers: int = 2
    seed_on_startup: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            sql_echo=_env_bool("SQL_ECHO", False),
            jwt_secret=os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET"),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", "60")),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
            notify_workers=int(os.getenv("NOTIFY_WORKERS", "2")),
            seed_on_startup=_env_bool("SEED_ON_STARTUP", True),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def gmail_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def configure_logging(level: str = "INFO") -> None:
    """Configura il logging di processo (chiamata una volta da CLI e API)."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
