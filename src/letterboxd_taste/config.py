"""
Configuration for the Letterboxd taste recommender.

Tuning constants live at module level and can be overridden through
environment variables. Credentials and endpoints are gathered once into an
immutable ``Settings`` value that is passed explicitly to every collaborator.
"""
import os
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# HTTP
HTTP_TIMEOUT = _get_float_env("LETTERBOXD_HTTP_TIMEOUT", 20.0, min_val=1.0)
DEFAULT_MAX_CONCURRENT = _get_int_env("LETTERBOXD_MAX_CONCURRENT", 8, min_val=1)
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15"
)
ACCEPT_LANGUAGE = "en-US,en;q=0.9"

# Resilient fetch: bodies shorter than this are treated as soft failures
MIN_DOCUMENT_LENGTH = _get_int_env("LETTERBOXD_MIN_DOCUMENT_LENGTH", 500, min_val=0)

# Pagination
RATINGS_MAX_PAGES = _get_int_env("LETTERBOXD_RATINGS_MAX_PAGES", 10)
DIARY_MAX_PAGES = _get_int_env("LETTERBOXD_DIARY_MAX_PAGES", 10)
WATCHLIST_MAX_PAGES = _get_int_env("LETTERBOXD_WATCHLIST_MAX_PAGES", 20)
WATCHLIST_PAGE_MIN_ITEMS = 18  # Fewer items than this means the final page

# rated-N class -> stars
RATING_CLASS_DIVISOR = _get_float_env("LETTERBOXD_RATING_DIVISOR", 10.0, min_val=1.0)
MAX_STARS = 5.0
LIKED_MIN_STARS = 4.0

# Seed caps
LIKED_RESOLVE_CAP = 60
LIKED_TASTE_CAP = 40
DIARY_SEED_CAP = 40
WATCHLIST_SEED_CAP = 30

# Candidate pool
CANDIDATE_CAP = 400
RELATED_SEED_CAP = 20
RELATED_PER_SEED = 5
POPULAR_CAP = 60

# Scoring
CAST_CONSIDERED = 8
DIRECTOR_OVERLAP_BONUS = 0.08
CAST_OVERLAP_BONUS = 0.02
PENALTY_VOTE_SCALE = 50000
PENALTY_VOTE_WEIGHT = 0.25
PENALTY_POPULARITY_SCALE = 200
PENALTY_POPULARITY_WEIGHT = 0.1
PENALTY_CAP = 0.25

# Availability
AVAILABILITY_TOP_N = 80
ALTERNATES_COUNT = 7
PAID_PROVIDER_KINDS = frozenset({"rent", "buy"})


@dataclass(frozen=True)
class Settings:
    """Credentials and endpoints, read once at start-up."""
    tmdb_api_key: str = ""
    embedding_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    embedding_url: str = "https://api.openai.com/v1/embeddings"
    watch_region: str = "US"
    proxy_base: str = "https://r.jina.ai/"
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    http_timeout: float = HTTP_TIMEOUT

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            tmdb_api_key=os.environ.get("TMDB_API_KEY", "").strip(),
            embedding_api_key=os.environ.get("OPENAI_API_KEY", "").strip(),
            embedding_model=os.environ.get("EMBEDDING_MODEL", cls.embedding_model),
            embedding_url=os.environ.get("EMBEDDING_URL", cls.embedding_url),
            watch_region=os.environ.get("WATCH_REGION", cls.watch_region).upper(),
            proxy_base=os.environ.get("LETTERBOXD_PROXY_BASE", cls.proxy_base),
            max_concurrent=DEFAULT_MAX_CONCURRENT,
            http_timeout=HTTP_TIMEOUT,
        )

    def missing_credentials(self) -> list[str]:
        missing = []
        if not self.tmdb_api_key:
            missing.append("TMDB_API_KEY")
        if not self.embedding_api_key:
            missing.append("OPENAI_API_KEY")
        return missing
