import os
from dotenv import load_dotenv

# Load environment variables from .env file before reading anything
load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Worker cadence: how often the tick driver polls the feed and evaluates snipes
TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))

# Optional JSON file loaded into the feed table at startup
FEED_SEED_FILE = os.getenv("FEED_SEED_FILE")

# When set, fired bids are POSTed here instead of only being logged
BID_WEBHOOK_URL = os.getenv("BID_WEBHOOK_URL")
BID_WEBHOOK_TIMEOUT = float(os.getenv("BID_WEBHOOK_TIMEOUT", "5"))

PORT = int(os.getenv("PORT", 8000))
