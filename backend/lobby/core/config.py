import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    log_file: str | None = None
    cors_origins: List[str] = []
    # Pending messages per connection before new ones are dropped
    outbox_limit: int = 256


@lru_cache
def get_settings() -> Settings:
    # Load .env if present (noop if already loaded)
    load_dotenv()
    origins = os.getenv("CORS_ORIGINS", "")
    origins_list = [o.strip() for o in origins.split(",") if o.strip()]
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level=os.getenv("LOG_LEVEL", "info"),
        log_file=os.getenv("LOG_FILE") or None,
        cors_origins=origins_list,
        outbox_limit=int(os.getenv("OUTBOX_LIMIT", "256")),
    )
