"""Tunable constants shared across the pipeline."""

# Crawler
DEFAULT_MAX_DEPTH = 3
DEFAULT_MAX_PAGES = 50
MAX_CONTENT_CHARS = 5000
MAX_LINKS_PER_PAGE = 50
MAX_ENQUEUED_LINKS_PER_PAGE = 10
DEFAULT_CRAWL_DELAY_MS = 1000

# Browser
DEFAULT_VIEWPORT_WIDTH = 1920
DEFAULT_VIEWPORT_HEIGHT = 1080
DEFAULT_NAVIGATION_TIMEOUT_MS = 30000
DEFAULT_SELECTOR_TIMEOUT_MS = 10000

# Step execution
DEFAULT_WAIT_MS = 1000
MAX_WAIT_MS = 60000
STEP_SETTLE_DELAY_MS = 500
STEP_DEADLINE_GRACE_SECONDS = 5.0

# Test generation
SITE_PROMPT_MAX_PAGES = 5
SITE_PROMPT_CONTENT_CHARS = 500

# Worker
SYSTEM_USER_ID = "system"
STALE_JOB_TIMEOUT_MINUTES = 15
