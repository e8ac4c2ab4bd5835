from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "VENDOPS-FINANCE"
    LOG_LEVEL: str = "INFO"
    DEFAULT_TIMEZONE: str = "UTC"
    DAYS_PER_MONTH: int = 30
    REPORTS_MAX_DATE_RANGE_DAYS: int = 366
    COMMISSION_TIERS_STRICT: bool = False
    ROI_BREAK_EVEN_BAND_PERCENT: float = 5.0
    METRICS_ENABLED: bool = True

settings = Settings()
