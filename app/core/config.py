from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    STORE_PROVIDER: str = "memory"  # "memory" | "json"
    DATA_DIR: str = "./data/bookings"

    # Default hours for businesses without an override in BUSINESS_CONFIG_PATH
    BUSINESS_OPENING: str = "09:00"
    BUSINESS_CLOSING: str = "22:00"
    BUSINESS_CLOSED_DAYS: list[int] = []  # Monday=0 ... Sunday=6
    BUSINESS_CONFIG_PATH: str | None = None

    SLOT_STEP_MINUTES: int = 30
    MINIMUM_GAP_MINUTES: int = 15
    CANCELLATION_CUTOFF_HOURS: float = 2.0

    SERVICE_CATALOG_PATH: str | None = None


settings = Settings()
