import logging
from functools import lru_cache

from pedagochat.config import get_settings
from pedagochat.services.json_store import JsonSessionRepository


@lru_cache()
def get_repo() -> JsonSessionRepository:
    """Provides the JsonSessionRepository backing the sessions API."""
    settings = get_settings()
    logging.info("Initializing JsonSessionRepository...")
    return JsonSessionRepository(db_path=settings.db_path)
