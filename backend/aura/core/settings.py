from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Oryum Aura"
    ENVIRONMENT: str = "development"
    DATABASE_URL: str = "sqlite:///./data/aura.db"
    LOG_LEVEL: str = "INFO"

    # Auth Config
    JWT_SECRET: str | None = None
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Security
    PASSWORD_PEPPER: str = ""
    CORS_ORIGIN: str = "http://localhost:5173"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Rate limiting (windows in milliseconds)
    RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    RATE_LIMIT_MAX_REQUESTS: int = 100
    AUTH_RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    AUTH_RATE_LIMIT_MAX: int = 5
    STRICT_RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    STRICT_RATE_LIMIT_MAX: int = 20
    RATE_LIMIT_STORAGE_URL: str | None = None  # redis://... for multi-instance deployments

    # Initial secretary account, seeded on startup when both are set
    ADMIN_CPF: str | None = None
    ADMIN_PASSWORD: str | None = None
    ADMIN_NAME: str = "Secretaria Municipal"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGIN.split(",") if origin.strip()]

settings = Settings()
