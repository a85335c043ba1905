from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 25
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE_SECONDS: int = 300

    SERVICE_NAME: str = "irrigation-analytics-api"
    SERVICE_VERSION: str = "0.1.0"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Apply alembic migrations from the lifespan hook
    RUN_MIGRATIONS: bool = True

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
