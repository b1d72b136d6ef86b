"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Optional

from catalog.ticketmaster_client import DEFAULT_BASE_URL


@dataclass(frozen=True)
class Settings:
    """Settings for the catalog client, cache and logging."""
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    classification_name: str = 'music'
    cache_ttl_minutes: float = 15
    timeout_seconds: int = 30
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Settings':
        base_url = os.environ.get('TICKETMASTER_BASE_URL', '').strip() or DEFAULT_BASE_URL
        return cls(
            api_key=os.environ.get('TICKETMASTER_API_KEY') or None,
            base_url=base_url.rstrip('/'),
            classification_name=os.environ.get('TICKETMASTER_CLASSIFICATION', 'music'),
            cache_ttl_minutes=float(os.environ.get('CACHE_TTL_MINUTES', '15')),
            timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '30')),
            log_level=os.environ.get('LOG_LEVEL', 'INFO')
        )
