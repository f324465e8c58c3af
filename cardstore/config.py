from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardStore"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardstore"

    # Token signing. Override jwt_secret_key in every real deployment.
    jwt_secret_key: str = "change-me-to-a-secret-that-is-at-least-32-characters"
    jwt_issuer: str = "CardStoreAPI"
    jwt_audience: str = "CardStoreClients"
    jwt_expire_hours: int = 24

    # Order limits
    max_order_items: int = 50
    max_item_quantity: int = 100

    # Catalog paging
    default_page_size: int = 20
    max_page_size: int = 100


settings = Settings()


# =============================================================================
# FIELD LIMITS
# =============================================================================

# Upper bound for a card price
MAX_CARD_PRICE = Decimal("999999.99")

# Attack/defense ceiling for game attributes
MAX_CARD_STAT = 9999
