from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "EVSTOCK"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite+pysqlite:///./evstock.db"
    LOG_LEVEL: str = "INFO"
    METRICS_ENABLED: bool = True
    NOTIFICATIONS_ENABLED: bool = True
    OPS_ENABLE_INTEGRITY_SCAN: bool = True
    TRANSFER_LIST_MAX_PAGE_SIZE: int = 200


settings = Settings()
