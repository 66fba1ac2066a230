"""Environment-based configuration for the recognition client."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clarifai_client.api.schemas import Credentials


class Settings(BaseSettings):
    """Client settings loaded from CLARIFAI_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLARIFAI_",
        case_sensitive=False,
    )

    # Authentication
    client_id: str | None = None
    client_secret: str | None = None

    # Service
    base_url: str = "https://api.clarifai.com/v1"
    timeout: float = Field(default=30.0, gt=0)
    max_connections: int = Field(default=4, ge=1)

    # Token cache
    min_token_lifetime: float = Field(default=60.0, ge=0)
    token_store_path: str | None = None

    # Upload preprocessing
    max_image_dimension: int = Field(default=320, ge=1)
    jpeg_quality: int = Field(default=90, ge=1, le=95)
    max_image_pixels: int = Field(default=16_777_216, ge=1)

    def credentials(self) -> Credentials:
        """Return the configured credentials, failing if either half is missing."""
        if not self.client_id or not self.client_secret:
            raise ValueError("CLARIFAI_CLIENT_ID and CLARIFAI_CLIENT_SECRET must both be set")
        return Credentials(client_id=self.client_id, client_secret=self.client_secret)


def get_settings() -> Settings:
    """Create and return client settings."""
    return Settings()
