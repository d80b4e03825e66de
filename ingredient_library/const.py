"""Constants for the Ingredient Library data-view engine.

Defines the logging domain, the well-known persistence keys and the default
tuning values used when no configuration overrides them.
"""

# Domain tag attached to structured log records across all modules
DOMAIN: str = "ingredient_library"

# Public package version (kept in sync with pyproject.toml)
LIBRARY_VERSION: str = "0.1.0"

# Well-known persistence keys
VIEWS_KEY: str = "ingredient-library-views"
DEFAULT_VIEW_KEY: str = "ingredient-library-default-view"
LAST_USED_VIEW_KEY: str = "ingredient-library-last-used-view"

# Free-text search quiescence window (seconds)
DEFAULT_DEBOUNCE_SECONDS: float = 0.3

DEFAULT_PAGE_SIZE: int = 25

# Stock bucket upper bounds (exclusive); zero stock is always OutOfStock
STOCK_LOW_BELOW: int = 50
STOCK_MEDIUM_BELOW: int = 150

# REST data source defaults
DEFAULT_API_TIMEOUT: float = 10.0
DEFAULT_RETRY_ATTEMPTS: int = 3
DEFAULT_RETRY_DELAY: float = 1.0
DEFAULT_CACHE_TTL: float = 300.0

# Per-user table preferences
PREFERENCES_KEY_PREFIX: str = "ingredient-library-user-config"
PREFERENCES_VERSION: str = "1.0.0"
DEFAULT_USER_ID: str = "default"
