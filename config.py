import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        dashboard_months: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.dashboard_months = dashboard_months


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Europe/Berlin")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    dashboard_months = int(os.getenv("BUDGET_DASHBOARD_MONTHS", "12"))
    if dashboard_months < 1:
        raise ValueError("BUDGET_DASHBOARD_MONTHS must be at least 1")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        dashboard_months=dashboard_months,
    )
