"""Shared constants across the application."""

# Popularity score weights
POPULARITY_WEIGHTS = {
    "view": 1.0,
    "purchase": 10.0,
}

# Default limits
DEFAULT_RECOMMENDATION_LIMIT = 5
MAX_RECOMMENDATION_LIMIT = 50
CO_OCCURRENCE_TOP_K = 10
PERSONALIZED_CANDIDATE_MULTIPLIER = 2

# Profile caps
PROFILE_VIEW_EVENT_LIMIT = 100
MAX_VIEWED_PRODUCTS = 20
MAX_PURCHASED_PRODUCTS = 50
MAX_PREFERRED_CATEGORIES = 5
MAX_PREFERRED_BRANDS = 3
MAX_PROFILE_TAGS = 10
PRICE_RANGE_LOWER_FACTOR = 0.8
PRICE_RANGE_UPPER_FACTOR = 1.2

# Session signals
SESSION_RECENT_VIEWS = 10
SESSION_NEIGHBOR_EVENT_LIMIT = 500

# Batch sizes
SYNC_BATCH_SIZE = 100

# Time windows
POPULARITY_WINDOW_DAYS = 30
CO_OCCURRENCE_WINDOW_DAYS = 90
USER_PROFILE_LOOKBACK_DAYS = 90
