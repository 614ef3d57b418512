"""
API configuration settings.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Fixed allow-list of write tokens; override with API_TOKENS
DEFAULT_API_TOKENS = "amana-admin-7f3c9e21,amana-editor-4b8d0a56,amana-service-c2e61f98"


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Amana Bookstore API"
    api_version: str = "1.0.0"
    api_description: str = "A small REST API for the Amana bookstore catalogue and its reviews"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    # Data files
    books_file: str = "data/books.json"
    reviews_file: str = "data/reviews.json"

    # Write access
    api_tokens: str = DEFAULT_API_TOKENS  # Comma-separated list of valid tokens

    # CORS Settings
    cors_origins: list = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    def get_api_tokens(self) -> List[str]:
        """Parse the comma-separated token allow-list."""
        return [token.strip() for token in self.api_tokens.split(",") if token.strip()]

    def get_books_file_path(self) -> Path:
        return Path(self.books_file)

    def get_reviews_file_path(self) -> Path:
        return Path(self.reviews_file)


# Global config instance
config = APIConfig()
