import os
from datetime import datetime, timezone
from Helper.helperfunctions import datetime_to_ms


# Upstream market-data API and the local proxy in front of it
LYRA_API_URL = os.getenv("LYRA_API_URL", "https://api.lyra.finance/public/get_trade_history")
TRADE_PROXY_URL = os.getenv("TRADE_PROXY_URL", "http://localhost:8000")

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Fetching
MAX_TIME_WINDOW_MS = 7 * 24 * 60 * 60 * 1000  # 7 days in milliseconds
FETCH_BATCH_SIZE = 3
DEFAULT_PAGE_SIZE = 500

# Viewport
DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600
SMALL_VIEWPORT_WIDTH = 768

# Visual settings: name -> (min, max) for the integer sliders
VISUAL_SETTING_RANGES = {
    "node_size_scale": (1, 20),
    "force_strength": (1, 100),
    "edge_thickness_scale": (1, 20),
}

DEFAULT_VISUAL_SETTINGS = {
    "node_size_scale": 10,
    "force_strength": 30,
    "edge_thickness_scale": 10,
    "show_labels": True,
    "show_tooltips": True,
}


def default_filters(now_ms: int = None) -> dict:
    """Filters for the last 24 hours of settled ETH perp trades"""
    if now_ms is None:
        now_ms = datetime_to_ms(datetime.now(timezone.utc))

    return {
        "currency": "ETH",
        "instrument_type": "perp",
        "instrument_name": "ETH-PERP",
        "from_timestamp": now_ms - 24 * 60 * 60 * 1000,
        "to_timestamp": now_ms,
        "page_size": DEFAULT_PAGE_SIZE,
        "page": 1,
        "tx_status": "settled",
    }
