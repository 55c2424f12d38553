"""
Constants for model calls and text analysis.

This module centralizes the model identifiers, throttling delays, token
limits and text truncation sizes used across the analysis stations.
"""

# Gemini Model Identifiers
MODEL_PRO = "gemini-2.5-pro"
MODEL_FLASH = "gemini-2.0-flash-001"
MODEL_FLASH_LITE = "gemini-2.0-flash-lite"

# Models accepted by the provider and the model client
ALLOWED_MODELS = [
    MODEL_PRO,
    MODEL_FLASH,
    MODEL_FLASH_LITE,
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-pro",
    "gemini-1.5-flash",
]

DEFAULT_MODEL = MODEL_FLASH
DEFAULT_FALLBACK_MODEL = MODEL_FLASH_LITE

# Throttling
# Minimum seconds between two request initiations against the same model,
# keyed by cost tier (cheapest tier first)
LITE_TIER_DELAY = 6.0
MID_TIER_DELAY = 10.0
TOP_TIER_DELAY = 15.0

MODEL_DELAYS = {
    MODEL_FLASH_LITE: LITE_TIER_DELAY,
    MODEL_FLASH: MID_TIER_DELAY,
    MODEL_PRO: TOP_TIER_DELAY,
}

# Unknown model ids are throttled as mid tier
DEFAULT_MODEL_DELAY = MID_TIER_DELAY

# Pause between two consecutive stations (seconds)
DEFAULT_STAGE_DELAY = 6.0

# Token Limits
# Output budget requested from the service for every call
MAX_OUTPUT_TOKENS = 48192

# Character-based token estimation (the service does not report counts)
CHARS_PER_TOKEN_ESTIMATE = 4

# Generation defaults
DEFAULT_TEMPERATURE = 0.7
DEFAULT_REQUEST_TIMEOUT = 60.0

# Text truncation sizes (characters of source text sent with a prompt)
TEXT_LIMIT_LARGE = 30000
TEXT_LIMIT_MEDIUM = 25000
TEXT_LIMIT_SMALL = 20000
TEXT_LIMIT_BRIEF = 15000

# Upper bound of closer positions tried when repairing truncated JSON
MAX_REPAIR_ATTEMPTS = 32

# Placeholders for fields the service failed to populate
PLACEHOLDER_NA = "N/A"
PLACEHOLDER_UNDETERMINED = {
    "ar": "غير محدد",
    "en": "not determined",
}

# Character count bounds requested from station 1
MIN_MAJOR_CHARACTERS = 3
MAX_MAJOR_CHARACTERS = 7

# Minimum length of an acceptable final report (characters)
MIN_FINAL_REPORT_LENGTH = 100
