from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Seat Inventory API"
    API_PREFIX: str = "/api"
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "seating_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Holds
    HOLD_TTL_SECONDS: int = 900
    MAX_SEATS_PER_HOLD: int = 50

    # Expiry sweeper
    SWEEPER_ENABLED: bool = True
    SWEEPER_INTERVAL_SECONDS: int = 60
    SWEEPER_BATCH_SIZE: int = 100
    # Held seats younger than this are never reconciled (their reserve may still be in flight)
    SWEEPER_RECONCILE_GRACE_SECONDS: int = 60

    LOG_LEVEL: str = "INFO"
    EXPOSE_ERROR_DETAILS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
