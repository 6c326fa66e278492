import os
from functools import lru_cache


class Settings:
    def __init__(
        self,
        database_url: str,
        default_username: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.default_username = default_username
        self.log_level = log_level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # In-memory by default; nothing is expected to survive a restart.
    database_url = os.getenv("BUDGETING_DATABASE_URL", "sqlite://")
    default_username = os.getenv("BUDGETING_DEFAULT_USERNAME", "default")
    log_level = os.getenv("BUDGETING_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        default_username=default_username,
        log_level=log_level,
    )
