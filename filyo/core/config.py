from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Filyo"
    secret_key: str = "filyo-super-secret-change-me-in-production"
    access_token_expire_minutes: int = 60 * 24 * 7
    database_url: str = "sqlite+aiosqlite:///./filyo.db"
    db_echo: bool = False

    upload_dir: str = "./data/uploads"
    max_upload_size_bytes: int = 10 * 1024 * 1024 * 1024

    cors_origin: str = "http://localhost:5173"
    log_level: str = "info"

    bcrypt_rounds: int = 12
    smtp_timeout_seconds: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
