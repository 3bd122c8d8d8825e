"""
Runtime settings for the mapping engine.

ROWMAPPER_ENV selects an env file (.env.test, .env.production, ...) that
python-dotenv loads into the process environment before Config reads it;
without one, a plain .env is used. Variables already set in the
environment win over the file.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _load_env_file() -> str:
    environment = os.environ.get("ROWMAPPER_ENV", "development").lower()
    env_file = f".env.{environment}"
    if os.path.exists(env_file):
        load_dotenv(env_file)
    else:
        load_dotenv()
    return environment


env = _load_env_file()


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    environment: str
    database_url: str | None
    log_level: str
    log_json: bool
    failed_row_preview: int

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            environment=env,
            database_url=os.environ.get("DATABASE_URL"),
            log_level=os.environ.get("ROWMAPPER_LOG_LEVEL", "INFO"),
            log_json=_flag(os.environ.get("ROWMAPPER_LOG_JSON")),
            failed_row_preview=int(os.environ.get("ROWMAPPER_FAILED_ROW_PREVIEW", "10")),
        )


config = Config.from_env()
