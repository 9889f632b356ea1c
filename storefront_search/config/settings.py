# storefront_search/config/settings.py

"""Central configuration for the storefront_search engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the storefront_search engine."""

    # --- Collection cache ---
    COLLECTION_CACHE_TTL: float = 300.0     # Seconds a collection stays fresh
    PRELOAD_DELAY: float = 0.1              # Seconds between batch preloads
    ALL_COLLECTIONS: str = "all"            # Sentinel handle for the catalog

    # --- Smart cache ---
    SMART_CACHE_TTL: float = 600.0          # Precomputed collections (secs)

    # --- Search ---
    SEARCH_INDEX_TTL: float = 1800.0        # Index warm-up guard (secs)
    SEARCH_CACHE_SIZE: int = 1000           # Memoized result sets
    DEFAULT_SEARCH_LIMIT: int = 2000        # Max products per search

    # --- Metrics ---
    SLOW_SEARCH_THRESHOLD_MS: float = 100.0
    METRICS_MAX_QUERIES: int = 1000         # Trim once exceeded
    METRICS_KEEP_QUERIES: int = 500         # Most recent queries kept
    METRICS_KEEP_SAMPLES: int = 10          # Durations kept per query

    # --- Scheduling ---
    AUTO_REFRESH_INTERVAL: float = 300.0    # Product loader refresh (secs)
    INDEX_REFRESH_INTERVAL: float = 1800.0  # Background index rebuild
    METRICS_CLEANUP_INTERVAL: float = 300.0

    # --- Collection store (HTTP) ---
    REQUEST_DELAY: float = 1.0              # Base backoff between retries
    REQUEST_TIMEOUT: int = 15               # Seconds before a request times out
    MAX_RETRIES: int = 3                    # Retry count on transient failures
    MAX_DELAY_MULTIPLIER: int = 8           # Cap for adaptive backoff
    EDGE_FAILURE_LIMIT: int = 3             # Failed fetches before suspending
    EDGE_SUSPEND_SECONDS: float = 30.0      # Edge function call suspension
    SLOW_STORE_LATENCY_MS: float = 5000.0   # Health check "slow" cutoff

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "").rstrip("/")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    PRODUCTS_FUNCTION: str = os.getenv(
        "PRODUCTS_FUNCTION", "instant-product-cache"
    )
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "x-client-info": "storefront-search",
    }

    # --- Offline catalog snapshot ---
    CATALOG_PATH: Path | None = (
        Path(os.environ["CATALOG_PATH"])
        if os.getenv("CATALOG_PATH")
        else None
    )

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    LOGS_DIR: Path = BASE_DIR / "logs"

    @classmethod
    def products_endpoint(cls) -> str:
        """Return the full URL of the products edge function."""
        return f"{cls.SUPABASE_URL}/functions/v1/{cls.PRODUCTS_FUNCTION}"
