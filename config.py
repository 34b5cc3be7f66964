import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_hours: int,
        primary_owner_id: Optional[str],
        primary_owner_email: Optional[str],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.primary_owner_id = primary_owner_id
        self.primary_owner_email = primary_owner_email

    @property
    def sharing_enabled(self) -> bool:
        return bool(self.primary_owner_id)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "UTC")
    secret_key = os.getenv(
        "BUDGET_SECRET_KEY",
        "3f1c0b7e9d2a4c58a61e2f0d9b7c4a13e8d5f6a2b0c9e7d1f4a3b6c8e2d0f917",
    )
    token_max_age_hours = int(os.getenv("BUDGET_TOKEN_MAX_AGE_HOURS", "24"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        primary_owner_id=_optional_env("BUDGET_PRIMARY_OWNER_ID"),
        primary_owner_email=_optional_env("BUDGET_PRIMARY_OWNER_EMAIL"),
    )
