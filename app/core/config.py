from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # WhatsApp Cloud API
    whatsapp_access_token: Optional[str] = Field(None, alias="WHATSAPP_ACCESS_TOKEN")
    whatsapp_phone_number_id: Optional[str] = Field(None, alias="WHATSAPP_PHONE_NUMBER_ID")
    whatsapp_api_version: str = Field("v19.0", alias="WHATSAPP_API_VERSION")
    whatsapp_base_url: str = Field("https://graph.facebook.com", alias="WHATSAPP_BASE_URL")
    whatsapp_timeout_seconds: float = Field(30.0, alias="WHATSAPP_TIMEOUT_SECONDS")
    whatsapp_batch_size: int = Field(3, alias="WHATSAPP_BATCH_SIZE", ge=1)
    whatsapp_batch_delay_seconds: float = Field(2.0, alias="WHATSAPP_BATCH_DELAY_SECONDS", ge=0)

    college_name: str = Field("MLA Academy of Higher Learning", alias="COLLEGE_NAME")
    college_phone: str = Field("+91-98866-65520", alias="COLLEGE_PHONE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_access_token and self.whatsapp_phone_number_id)


settings = Settings()
