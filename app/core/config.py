"""
Application settings and configuration module.
Loads environment variables and provides application configuration.
"""
import logging
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings class.
    Loads settings from environment variables and provides default values.
    """
    # Project settings
    PROJECT_NAME: str = "Hound Subscription Ledger"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = Field(default=False)

    # Server settings
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # Security
    SECRET_KEY: str = Field(...)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24)  # 1 day
    ALGORITHM: str = Field(default="HS256")

    # Database
    DATABASE_URL: str = Field(...)

    # Apple specific
    APPLE_BUNDLE_ID: str = Field(...)
    APPLE_APP_APPLE_ID: Optional[int] = None
    APPLE_ISSUER_ID: Optional[str] = None
    APPLE_PRIVATE_KEY_ID: Optional[str] = None
    APPLE_PRIVATE_KEY_PATH: Optional[str] = None
    APPLE_ENVIRONMENT: str = Field(default="Production")  # Production or Sandbox
    APPLE_ROOT_CERTIFICATES_DIR: Optional[str] = None
    APPLE_ROOT_CERTIFICATE_URLS: List[str] = Field(
        default_factory=lambda: [
            "https://www.apple.com/certificateauthority/AppleRootCA-G3.cer",
            "https://www.apple.com/appleca/AppleIncRootCertificate.cer",
        ]
    )
    APPLE_ENABLE_ONLINE_CHECKS: bool = Field(default=True)
    APPLE_API_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            return "INFO"
        return v.upper()

    @field_validator("APPLE_ENVIRONMENT")
    @classmethod
    def validate_apple_environment(cls, v):
        """Normalize the App Store environment to Apple's spelling."""
        if v.lower() == "sandbox":
            return "Sandbox"
        if v.lower() == "production":
            return "Production"
        raise ValueError("APPLE_ENVIRONMENT must be 'Production' or 'Sandbox'")

    @property
    def is_production(self) -> bool:
        return self.APPLE_ENVIRONMENT == "Production"

    class Config:
        """Pydantic config."""
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


# Initialize settings
settings = Settings()  # type: ignore

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
