import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        invitation_ttl_days: int,
        site_url: str,
        currency_code: str,
        sql_echo: bool = False,
        auto_create_schema: bool = True,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.invitation_ttl_days = invitation_ttl_days
        self.site_url = site_url
        self.currency_code = currency_code
        self.sql_echo = sql_echo
        self.auto_create_schema = auto_create_schema


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("EXPENSES_TIMEZONE", "Asia/Kolkata")
    session_secret = os.getenv(
        "EXPENSES_SESSION_SECRET",
        "5f0c2a9be14d7386a1e0c4f2b7d95e31c8a6f40d2be7193a5c8e06f1d4b2a977",
    )
    session_max_age_hours = int(os.getenv("EXPENSES_SESSION_MAX_AGE_HOURS", "168"))
    invitation_ttl_days = int(os.getenv("EXPENSES_INVITATION_TTL_DAYS", "7"))
    site_url = os.getenv("EXPENSES_SITE_URL", "http://localhost:8000").rstrip("/")
    currency_code = os.getenv("EXPENSES_CURRENCY", "INR")
    sql_echo = _env_flag("EXPENSES_SQL_ECHO", False)
    auto_create_schema = _env_flag("EXPENSES_AUTO_CREATE_SCHEMA", True)
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        invitation_ttl_days=invitation_ttl_days,
        site_url=site_url,
        currency_code=currency_code,
        sql_echo=sql_echo,
        auto_create_schema=auto_create_schema,
    )
