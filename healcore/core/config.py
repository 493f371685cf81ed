from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Heal Your Core Progress API"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    JWT_SECRET: str | None = None
    JWT_AUDIENCE: str = "authenticated"

    # All day/week/month bucketing uses this zone for every entity type
    REPORTING_TIMEZONE: str = "UTC"

    AUTO_ADVANCE_SECONDS: float = 2.0

    PROGRAM_ID: str = "heal-your-core"
    PROGRAM_WEEKS: int = 6
    WORKOUTS_PER_WEEK: int = 4

    SHARE_BASE_URL: str = "https://wa.me/"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()  # type: ignore
