"""
ShopCalc Configuration Settings
"""
import os

# Application Settings
APP_NAME = "ShopCalc Business Calculator"
VERSION = "1.0.0"

# Database Settings
DB_PATH = os.environ.get(
    "SHOPCALC_DB_PATH",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "shopcalc.db"),
)

# History Settings
MAX_HISTORY_ITEMS = 100

# ── Calculator engine ──────────────────────────────────────────────────────────

# Largest magnitude the arithmetic primitives accept (12 display digits)
MAX_SAFE_VALUE = 999999999999
MIN_SAFE_VALUE = -999999999999

# Decimals kept when a computed value is written to the display
DISPLAY_PRECISION = 10

# Digits accepted in a single entry; further key presses are ignored
MAX_INPUT_DIGITS = 12

# Markup selling price and statistics are shown to the cent
MARKUP_DECIMALS = 2
STATISTICS_DECIMALS = 2

# ── Replay ─────────────────────────────────────────────────────────────────────

# Seconds between AUTO replay frames
REPLAY_STEP_DELAY = float(os.environ.get("SHOPCALC_REPLAY_DELAY", "1.5"))

# Logging
LOG_LEVEL = os.environ.get("SHOPCALC_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Web Portal settings
WEB_HOST = '0.0.0.0'
WEB_PORT = int(os.environ.get("SHOPCALC_WEB_PORT", "8888"))
