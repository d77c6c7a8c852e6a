"""Configuration management via pydantic-settings."""

import re

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SANDBOX_AUTH_URL = "https://api.sandbox.ebay.com/identity/v1/oauth2/token"
PRODUCTION_AUTH_URL = "https://api.ebay.com/identity/v1/oauth2/token"
SANDBOX_API_BASE_URL = "https://api.sandbox.ebay.com"
PRODUCTION_API_BASE_URL = "https://api.ebay.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Discord
    discord_bot_token: str | None = None

    # eBay
    ebay_client_id: str | None = None
    ebay_client_secret: str | None = None
    ebay_sdxclient_id: str | None = None
    ebay_sdxclient_secret: str | None = None
    ebay_use_sandbox: bool = False
    ebay_marketplace_id: str = "EBAY_GB"
    ebay_request_timeout: float = 30.0
    token_expiry_buffer_seconds: int = 300

    # Ranking service (OpenAI-compatible chat completions)
    ranker_enabled: bool = False
    ranker_api_key: str | None = None
    ranker_model: str = "meta/llama-3.1-70b-instruct"
    ranker_endpoint: str = "https://integrate.api.nvidia.com/v1/chat/completions"
    ranker_timeout: float = 120.0

    # Fetching and display
    deals_fetch_size: int = 50
    auctions_fetch_size: int = 50
    initial_display_count: int = 16
    load_more_increment: int = 16
    homepage_themes: list[str] = Field(
        default_factory=lambda: [
            "laptop",
            "camera",
            "headphones",
            "smart watch",
            "gaming console",
            "kitchen appliance",
            "toys",
            "fashion accessories",
            "sports equipment",
            "home decor",
        ]
    )
    homepage_theme_count: int = 1

    # Deal filter calibration
    max_original_price_multiple: float = 10.0
    category_price_multiples: dict[str, float] = Field(
        default_factory=lambda: {
            "collectible": 50.0,
            "collectable": 50.0,
            "antique": 50.0,
            "art": 50.0,
            "jewellery": 20.0,
            "jewelry": 20.0,
            "wristwatch": 20.0,
        }
    )
    bulk_min_quantity: int = 2

    # Logging
    log_level: str = "INFO"

    @property
    def active_client_id(self) -> str | None:
        if self.ebay_use_sandbox:
            return self.ebay_sdxclient_id
        return self.ebay_client_id

    @property
    def active_client_secret(self) -> str | None:
        if self.ebay_use_sandbox:
            return self.ebay_sdxclient_secret
        return self.ebay_client_secret

    @property
    def ebay_mode(self) -> str:
        return "Sandbox" if self.ebay_use_sandbox else "Production"

    @property
    def ebay_auth_url(self) -> str:
        return SANDBOX_AUTH_URL if self.ebay_use_sandbox else PRODUCTION_AUTH_URL

    @property
    def ebay_api_base_url(self) -> str:
        return SANDBOX_API_BASE_URL if self.ebay_use_sandbox else PRODUCTION_API_BASE_URL

    def price_multiple_for(self, category: str | None) -> float:
        """Maximum plausible original/current price ratio for a category.

        Keys match whole words of the category name, singular or plural, so both
        top-level names and leaf categories pick up the override.
        """
        name = (category or "").lower()
        matches = [
            multiple
            for key, multiple in self.category_price_multiples.items()
            if re.search(rf"(?<!\w){re.escape(key.lower())}(?:e?s)?(?!\w)", name)
        ]
        return max(matches, default=self.max_original_price_multiple)


settings = Settings()  # type: ignore[call-arg]
