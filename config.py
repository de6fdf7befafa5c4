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
        base_currency: str,
        fx_provider: str,
        fx_refresh_hours: float,
        fx_timeout_secs: float,
        seed_demo: bool,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.base_currency = base_currency
        self.fx_provider = fx_provider
        self.fx_refresh_hours = fx_refresh_hours
        self.fx_timeout_secs = fx_timeout_secs
        self.seed_demo = seed_demo
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    session_secret = os.getenv(
        "FINANCE_SESSION_SECRET",
        "5f0c2a9e41b7d3866e2c1f04a9b8d7e3c6a15f92d0e4b7a83c9e1d26f4a0b5c7",
    )
    session_max_age_hours = int(os.getenv("FINANCE_SESSION_MAX_AGE_HOURS", "168"))
    base_currency = os.getenv("FINANCE_BASE_CURRENCY", "USD").upper()
    fx_provider = os.getenv("FINANCE_FX_PROVIDER", "static")
    fx_refresh_hours = float(os.getenv("FINANCE_FX_REFRESH_HOURS", "12"))
    fx_timeout_secs = float(os.getenv("FINANCE_FX_TIMEOUT_SECS", "5"))
    seed_demo = _env_flag("FINANCE_SEED_DEMO", "1")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        base_currency=base_currency,
        fx_provider=fx_provider,
        fx_refresh_hours=fx_refresh_hours,
        fx_timeout_secs=fx_timeout_secs,
        seed_demo=seed_demo,
        log_level=log_level,
    )
