from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # Monday=1 .. Sunday=7. Days outside this set are implicit holidays unless the school overrides it.
    default_working_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5], alias="DEFAULT_WORKING_DAYS")
    # JSON list of {"period_no", "label", "start_time", "end_time", "is_break"}; None => built-in template
    period_catalog: Optional[str] = Field(None, alias="PERIOD_CATALOG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
