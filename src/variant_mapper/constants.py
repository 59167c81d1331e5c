# src/variant_mapper/constants.py
"""Centralized constants for the variant mapper.

This module contains magic numbers and configuration values that are used
across multiple modules. For user-configurable thresholds, see config.py
and ScoringThresholds.
"""

# =============================================================================
# Fetching Constants
# =============================================================================

# Per-request timeout in seconds
DEFAULT_REQUEST_TIMEOUT_SECONDS = 15

# Ceiling for the whole target fetch (all attempts) in seconds
DEFAULT_FETCH_TIMEOUT_SECONDS = 45

# Default maximum attempts for a transient fetch failure
DEFAULT_MAX_RETRIES = 3

# Base for exponential backoff calculation
EXPONENTIAL_BACKOFF_BASE = 2

# Initial backoff delay in seconds
INITIAL_BACKOFF_DELAY_SECONDS = 1.0

# Maximum backoff delay in seconds
MAX_BACKOFF_DELAY_SECONDS = 10.0

# HTTP status codes that are worth retrying
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Default domain suffix when a shop id is a bare store handle
DEFAULT_SHOP_DOMAIN_SUFFIX = "myshopify.com"


# =============================================================================
# Scoring Constants
# =============================================================================

# Confidence below which a candidate is flagged low-confidence
DEFAULT_CONFIDENCE_FLOOR = 0.5

# Number of candidates returned per field by default
DEFAULT_MAX_CANDIDATES = 5

# Number of DOM elements examined per field before giving up
MAX_ELEMENTS_EXAMINED = 400

# Decimal places kept on confidence scores
CONFIDENCE_PRECISION = 3

# Utility-class prefixes ignored when building class selectors
UTILITY_CLASS_PREFIXES = (
    "col-", "row-", "mt-", "mb-", "ml-", "mr-", "mx-", "my-",
    "pt-", "pb-", "px-", "py-", "p-", "m-", "w-", "h-",
    "text-", "bg-", "flex", "grid", "gap-", "js-",
)

# State classes that do not describe structure
STATE_CLASSES = frozenset({
    "active", "disabled", "hidden", "visible", "selected", "checked",
    "is-active", "is-hidden", "is-open", "is-loading", "loaded", "lazyloaded",
    "lazyload", "animate", "animated",
})


# =============================================================================
# Fingerprint Constants
# =============================================================================

# Depth of the product region skeleton used for the theme fingerprint
FINGERPRINT_MAX_DEPTH = 6

# Hex characters kept from the fingerprint digest
FINGERPRINT_LENGTH = 16


# =============================================================================
# Job Constants
# =============================================================================

# Maximum concurrently running mapping jobs
DEFAULT_MAX_CONCURRENT_JOBS = 4

# Terminal jobs older than this are eligible for cleanup
DEFAULT_JOB_RETENTION_HOURS = 24

# Progress ceiling while a job is still running
RUNNING_PROGRESS_CEILING = 99


# =============================================================================
# Injection Constants
# =============================================================================

# DOM id of the embedded payload element
PAYLOAD_ELEMENT_ID = "adlign-data"

# Class/ancestor keywords that mark price elements
PRICE_KEYWORDS = ("price", "money")
