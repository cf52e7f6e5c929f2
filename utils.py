"""
Utility functions for logging setup and environment checks.
"""
import logging
import os
from typing import Dict, List

import config

# key -> (description, where to get one)
REQUIRED_SECRETS = {
    "GEMINI_API_KEY": ("Google Gemini AI API key", "https://aistudio.google.com/apikey"),
    "GROQ_API_KEY": ("Groq AI API key", "https://console.groq.com/keys"),
    "FINNHUB_API_KEY": ("Finnhub stock data API key", "https://finnhub.io/"),
}


def setup_logging(log_level: str = config.LOG_LEVEL) -> None:
    """Configure logging with timestamp and level."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Quiet some noisy third-party loggers
    for name in ("urllib3", "httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


def check_environment() -> Dict[str, object]:
    """
    Log which API keys are configured.

    Returns:
        Dict with available/missing key names and readiness flags
    """
    available: List[str] = []
    missing: List[str] = []

    for key, (description, url) in REQUIRED_SECRETS.items():
        if os.getenv(key):
            available.append(key)
            logging.info(f"✓ {key} - Available")
        else:
            missing.append(key)
            logging.warning(f"✗ {key} - Missing ({description}, get one at {url})")

    if not missing:
        logging.info("All API keys configured! Full functionality enabled.")
    elif available:
        logging.warning(
            f"Partial configuration: {len(available)}/{len(REQUIRED_SECRETS)} keys set. "
            "Some features may be limited."
        )
    else:
        logging.warning("No API keys configured. App will run with limited functionality.")

    return {
        'available': available,
        'missing': missing,
        'is_fully_configured': not missing,
        'has_ai': "GEMINI_API_KEY" in available and "GROQ_API_KEY" in available,
        'has_market_data': "FINNHUB_API_KEY" in available,
    }


def get_env_status() -> Dict[str, bool]:
    """Which providers have credentials."""
    return {
        'geminiReady': bool(os.getenv("GEMINI_API_KEY")),
        'groqReady': bool(os.getenv("GROQ_API_KEY")),
        'finnhubReady': bool(os.getenv("FINNHUB_API_KEY")),
    }
