"""
Configuration constants for Agent Pippy.
Numeric settings can be overridden through environment variables (.env is
loaded by app.py before this module is imported).
"""
import os


def _env_float(key: str, default: float) -> float:
    """Read a positive float from env, fallback to default."""
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        val = float(raw)
    except ValueError:
        return default
    return val if val > 0 else default


def _env_int(key: str, default: int) -> int:
    return int(_env_float(key, default))


# ============================================================
# TRADING INSTRUMENTS & WATCH-LISTS
# ============================================================
TRADING_PAIRS = ["US30", "NAS100", "SPX500"]
DEFAULT_PAIR = "US30"
TIMEFRAMES = ["15m", "1hr", "4hr", "daily"]

# Constituents tracked per index (symbol -> display name)
WATCHLISTS = {
    "US30": {
        "AAPL": "Apple", "MSFT": "Microsoft", "UNH": "UnitedHealth",
        "GS": "Goldman Sachs", "HD": "Home Depot", "MCD": "McDonald's",
        "CAT": "Caterpillar", "AMGN": "Amgen", "V": "Visa", "BA": "Boeing",
        "JPM": "JPMorgan", "JNJ": "Johnson & J", "WMT": "Walmart",
        "PG": "Procter", "CRM": "Salesforce",
    },
    "NAS100": {
        "AAPL": "Apple", "MSFT": "Microsoft", "NVDA": "NVIDIA",
        "AMZN": "Amazon", "META": "Meta", "GOOGL": "Alphabet",
        "TSLA": "Tesla", "AVGO": "Broadcom", "COST": "Costco",
        "NFLX": "Netflix", "QCOM": "Qualcomm", "AMD": "AMD",
        "INTC": "Intel", "CRM": "Salesforce", "ADBE": "Adobe",
    },
    "SPX500": {
        "AAPL": "Apple", "MSFT": "Microsoft", "NVDA": "NVIDIA",
        "AMZN": "Amazon", "META": "Meta", "GOOGL": "Alphabet",
        "BRK.B": "Berkshire", "JPM": "JPMorgan", "LLY": "Eli Lilly",
        "XOM": "ExxonMobil", "V": "Visa", "WMT": "Walmart",
        "JNJ": "Johnson & J", "PG": "Procter", "MA": "Mastercard",
    },
}

# Sector per watch-list symbol, for the market heatmap
SECTORS = {
    "AAPL": "Technology", "MSFT": "Technology", "NVDA": "Technology",
    "AVGO": "Technology", "QCOM": "Technology", "AMD": "Technology",
    "INTC": "Technology", "CRM": "Technology", "ADBE": "Technology",
    "GOOGL": "Communication", "META": "Communication", "NFLX": "Communication",
    "AMZN": "Consumer Discretionary", "TSLA": "Consumer Discretionary",
    "HD": "Consumer Discretionary", "MCD": "Consumer Discretionary",
    "COST": "Consumer Staples", "WMT": "Consumer Staples", "PG": "Consumer Staples",
    "GS": "Financials", "JPM": "Financials", "V": "Financials",
    "MA": "Financials", "BRK.B": "Financials",
    "UNH": "Health Care", "AMGN": "Health Care", "JNJ": "Health Care", "LLY": "Health Care",
    "CAT": "Industrials", "BA": "Industrials",
    "XOM": "Energy",
}

# ============================================================
# PROVIDER ENDPOINTS
# ============================================================
FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
CALENDAR_FEED_URL = os.getenv(
    "CALENDAR_FEED_URL", "https://nfs.faireconomy.media/ff_calendar_thisweek.json"
)
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

# ============================================================
# AI BACKENDS
# ============================================================
PRIMARY_PROVIDER = os.getenv("PRIMARY_PROVIDER", "gemini")
SECONDARY_PROVIDER = os.getenv("SECONDARY_PROVIDER", "groq")

DEFAULT_MODELS = {
    "gemini": os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
    "groq": os.getenv("GROQ_MODEL", "llama-3.1-8b-instant"),
    "openai": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
    "anthropic": os.getenv("ANTHROPIC_MODEL", "claude-3-haiku-20240307"),
}

# Env var holding the key for each provider
PROVIDER_KEYS = {
    "gemini": "GEMINI_API_KEY",
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

LLM_MAX_TOKENS = _env_int("LLM_MAX_TOKENS", 800)
LLM_TEMPERATURE = 0.4
LLM_CALL_DEADLINE_SECONDS = _env_float("LLM_CALL_DEADLINE_SECONDS", 60.0)

SYSTEM_PROMPT = (
    "You are Agent Pippy, a friendly and knowledgeable AI trading assistant. "
    "You help users understand trading concepts, market analysis, investment "
    "strategies, and financial topics. You speak in a professional yet "
    "approachable manner. You provide educational information but always remind "
    "users that trading involves risks and they should do their own research. "
    "Never provide specific financial advice or guarantee returns."
)

# ============================================================
# CACHING & RETRY
# ============================================================
QUOTE_CACHE_TTL_SECONDS = _env_float("QUOTE_CACHE_TTL_SECONDS", 30.0)
CHART_CACHE_TTL_SECONDS = _env_float("CHART_CACHE_TTL_SECONDS", 3600.0)

RETRY_MAX_ATTEMPTS = _env_int("RETRY_MAX_ATTEMPTS", 3)
RETRY_BASE_DELAY_SECONDS = _env_float("RETRY_BASE_DELAY_SECONDS", 1.0)

# HTTP timeout for quote / news / calendar requests
PROVIDER_TIMEOUT_SECONDS = _env_float("PROVIDER_TIMEOUT_SECONDS", 15.0)

# ============================================================
# AGGREGATION
# ============================================================
NEWS_LOOKBACK_DAYS = _env_int("NEWS_LOOKBACK_DAYS", 3)
NEWS_LIMIT = 10
NEWS_SYMBOLS_PER_INDEX = 3  # Constituents queried for index-level news
CALENDAR_IMPACTS = ("High", "Medium")

CHART_UPLOAD_DIR = os.getenv("CHART_UPLOAD_DIR", "uploads/charts")
CHART_EXTENSIONS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

# Chat turns forwarded to the models
CHAT_HISTORY_TURNS = 10

# Keyword set per query category; any match enriches the prompt with live data
QUERY_KEYWORDS = {
    "charts": ["chart", "charts", "technical", "support", "resistance", "pattern", "candle"],
    "quotes": ["stock", "stocks", "price", "prices", "quote", "movers", "doing", "market"],
    "news": ["news", "headline", "headlines", "earnings", "announcement"],
    "calendar": ["calendar", "event", "events", "cpi", "fomc", "nfp", "fed", "economic"],
    "plan": ["plan", "setup", "setups", "trade idea", "entry", "bias", "levels"],
}

# ============================================================
# SERVER
# ============================================================
PORT = _env_int("PORT", 3001)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
