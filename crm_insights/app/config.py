"""FastAPI application settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    api_prefix: str = "/api/v1"

    class Config:
        env_file = ".env"


settings = Settings()
