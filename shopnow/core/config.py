# shopnow/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized client settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key; the app never holds the service role key)

    Optional:
      - PRODUCTS_TABLE / CART_TABLE if the project uses other table names
      - LOG_LEVEL
    """

    PROJECT_NAME: str = "ShopNow"

    # Supabase project
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # Tables backing the logical collections
    PRODUCTS_TABLE: str = "products"
    CART_TABLE: str = "cart_items"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env every time a client is built.
    """
    return Settings()
