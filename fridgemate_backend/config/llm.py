"""Defaults for the hosted language model that are tracked in Git."""

# Model used for photo, receipt and free-text recognition.
DEFAULT_RECOGNITION_MODEL = "gpt-4o"

# Cheaper model used for recipe recommendations and details.
DEFAULT_RECIPE_MODEL = "gpt-4o-mini"

# Vision calls take several seconds; receipts need two hops.
DEFAULT_VISION_TIMEOUT_SECONDS = 60.0
DEFAULT_TEXT_TIMEOUT_SECONDS = 30.0

IMAGE_ANALYSIS_MAX_TOKENS = 1000
RECEIPT_ANALYSIS_MAX_TOKENS = 1500
TEXT_ANALYSIS_MAX_TOKENS = 1000
INGREDIENT_INFO_MAX_TOKENS = 800
RECIPE_RECOMMEND_MAX_TOKENS = 2000
RECIPE_DETAIL_MAX_TOKENS = 3000

RECIPE_TEMPERATURE = 0.7
