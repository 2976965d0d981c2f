"""Constants and configuration for cfspeed."""

from cfspeed.models import TestTier

# Speed-test endpoint
DEFAULT_HOST = "speed.cloudflare.com"
DOWNLOAD_PATH = "/__down"
UPLOAD_PATH = "/__up"
LOCATIONS_PATH = "/locations"
TRACE_PATH = "/cdn-cgi/trace"

# Default measurement settings
DEFAULT_TIMEOUT = 30.0
DOWNLOAD_CHUNK_SIZE = 64 * 1024
UPLOAD_FILLER = b"0"

# Measurement tiers: (label, payload bytes, iterations)
LATENCY_TIER = TestTier("latency", 1000, 20)

DOWNLOAD_TIERS = (
    TestTier("100kB", 101_000, 10),
    TestTier("1MB", 1_001_000, 8),
    TestTier("10MB", 10_001_000, 6),
    TestTier("25MB", 25_001_000, 4),
    TestTier("100MB", 100_001_000, 1),
)

UPLOAD_TIERS = (
    TestTier("11kB", 11_000, 10),
    TestTier("100kB", 101_000, 10),
    TestTier("1MB", 1_001_000, 8),
)

# Nearest-rank quantile used for the overall speed figures
SPEED_QUANTILE = 0.9

# User agent for HTTP requests
USER_AGENT = "cfspeed/0.1.0"

# Report row categories -> Rich styles
CATEGORY_STYLES = {
    "info": "blue",
    "latency": "magenta",
    "tier": "yellow",
    "speed": "green",
}

LABEL_WIDTH = 16
