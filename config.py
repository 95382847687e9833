import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_secs: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_secs = token_max_age_secs
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budge.db"
    database_url = os.getenv("BUDGE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGE_TIMEZONE", "UTC")
    token_secret = os.getenv(
        "BUDGE_TOKEN_SECRET",
        "5d0c3c8e1f7a4b2f9e6d8a1c3b5f7e9d2a4c6e8f0b1d3f5a7c9e1b3d5f7a9c1e",
    )
    token_max_age_secs = int(os.getenv("BUDGE_TOKEN_MAX_AGE_SECS", str(7 * 24 * 3600)))
    log_level = os.getenv("BUDGE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_secs=token_max_age_secs,
        log_level=log_level,
    )
