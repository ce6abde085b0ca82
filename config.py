from pydantic_settings import BaseSettings, SettingsConfigDict


class ENV(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Either a full DATABASE_URL or the POSTGRES_* parts
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_NAME: str = "biosculpture"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASS: str = "postgres"

    API_KEY: str = "change-me"
    BASE_URL: str = "http://localhost:3000"

    CLICK_ATTRIBUTION_WINDOW_DAYS: int = 30
    AFFILIATE_CODE_ATTEMPTS: int = 10
    EFFECT_MAX_ATTEMPTS: int = 5

    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    CELERY_TIMEZONE: str = "UTC"
    EFFECT_DRAIN_INTERVAL_SECONDS: float = 60.0
    EFFECT_DRAIN_BATCH: int = 100


class Settings():
    def __init__(self):
        self.env = ENV()

    def generate_postgres_url(self) -> str:
        if self.env.DATABASE_URL:
            return self.env.DATABASE_URL
        return f"postgresql+asyncpg://{self.env.POSTGRES_USER}:{self.env.POSTGRES_PASS}@{self.env.POSTGRES_HOST}:{self.env.POSTGRES_PORT}/{self.env.POSTGRES_NAME}"

    def affiliate_link(self, code: str) -> str:
        return f"{self.env.BASE_URL}/?ref={code}"


settings = Settings()
