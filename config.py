"""
Configuration management for the CardLead scanning API.

Handles environment variables, provider API keys, and application settings.
"""

import os
import logging
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip().lower() for item in os.getenv(name, default).split(",") if item.strip()]


class Config:
    """Application configuration class.

    Attributes:
        DEBUG: Enable debug mode
        TESTING: Enable testing mode
        SECRET_KEY: Flask secret key
        MAX_CONTENT_LENGTH: Maximum request body size (base64 images included)
        TEMP_FOLDER: Directory for temporary card images
        PROVIDER_ORDER: Provider fallback order, primary first
        PROVIDER_TIMEOUT: Per-provider request timeout in seconds
        MAX_IMAGES: Images accepted per multi-image scan
        RESCAN_MAX_IMAGES: Images scanned per lead by the rescan workflow
        QR_FETCH_LANDING_PAGES: Scrape QR landing pages for contact details
    """

    # Flask Settings
    DEBUG: bool = os.getenv("CARD_API_DEBUG", "False").lower() == "true"
    TESTING: bool = os.getenv("CARD_API_TESTING", "False").lower() == "true"
    SECRET_KEY: str = os.getenv("CARD_API_SECRET_KEY", "dev-secret-key-change-in-production")

    # Request Settings
    MAX_CONTENT_LENGTH: int = int(os.getenv("CARD_API_MAX_CONTENT_LENGTH", str(16 * 1024 * 1024)))  # 16MB
    TEMP_FOLDER: str = os.getenv("CARD_API_TEMP_FOLDER", "temp")

    # Provider API Keys
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")

    # Provider Models
    OPENAI_VISION_MODEL: str = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini")
    OPENAI_TEXT_MODEL: str = os.getenv("OPENAI_TEXT_MODEL", "gpt-4o")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # Provider fallback
    PROVIDER_ORDER: List[str] = _env_list("PROVIDER_ORDER", "openai,gemini")
    PROVIDER_TIMEOUT: float = float(os.getenv("PROVIDER_TIMEOUT", "30"))

    # Scan limits
    MAX_IMAGES: int = int(os.getenv("MAX_IMAGES", "3"))
    RESCAN_MAX_IMAGES: int = int(os.getenv("RESCAN_MAX_IMAGES", "2"))

    # QR
    QR_FETCH_LANDING_PAGES: bool = os.getenv("QR_FETCH_LANDING_PAGES", "False").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("CARD_API_LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("CARD_API_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    @classmethod
    def init_app(cls, app) -> None:
        """Initialize Flask app with configuration.

        Args:
            app: Flask application instance
        """
        app.config.from_object(cls)

        # Create required directories
        os.makedirs(cls.TEMP_FOLDER, exist_ok=True)

        # Configure logging
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL.upper(), logging.INFO),
            format=cls.LOG_FORMAT
        )

        logger.info("Configuration initialized successfully")

    @classmethod
    def get_api_status(cls) -> dict:
        """Get status of configured API keys.

        Returns:
            Dictionary with API availability status
        """
        return {
            "openai_api": bool(cls.OPENAI_API_KEY),
            "gemini_api": bool(cls.GEMINI_API_KEY)
        }


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    LOG_LEVEL = "INFO"


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    LOG_LEVEL = "DEBUG"
    # Tests never reach real providers
    OPENAI_API_KEY = None
    GEMINI_API_KEY = None
    QR_FETCH_LANDING_PAGES = False


# Configuration mapping
config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> Config:
    """Get configuration class by name.

    Args:
        config_name: Configuration name (development, production, testing)

    Returns:
        Configuration class
    """
    if config_name is None:
        config_name = os.getenv("CARD_API_ENV", "development")
    return config_by_name.get(config_name, DevelopmentConfig)
