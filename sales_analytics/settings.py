import os
from pathlib import Path
from dotenv import load_dotenv

# --- Base Directory ---
BASE_DIR = Path(__file__).resolve().parent.parent

# --- Load Environment Variables ---
load_dotenv(BASE_DIR / ".env")

# --- Path Configuration ---
LOG_DIR = BASE_DIR / os.getenv("LOG_DIR", "logs")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILENAME = "app.log"

# --- Record Store (PostgREST / Supabase REST endpoint) ---
STORE_URL = os.getenv("STORE_URL")
STORE_API_KEY = os.getenv("STORE_API_KEY")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))

SALES_TABLE = os.getenv("SALES_TABLE", "sales")
SALE_DETAILS_TABLE = os.getenv("SALE_DETAILS_TABLE", "sale_details")
STOCK_TABLE = os.getenv("STOCK_TABLE", "stock_summary")
CUSTOMER_TABLE = os.getenv("CUSTOMER_TABLE", "customer_summary")

# --- Calendar ---
# Every "today" and every date window is evaluated in this zone.
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "Asia/Kolkata")

# --- Live Dashboard ---
LIVE_SEED_LIMIT = int(os.getenv("LIVE_SEED_LIMIT", "50"))

# --- Report Defaults ---
DEFAULT_PAYMENT_MODE = os.getenv("DEFAULT_PAYMENT_MODE", "CASH")
# sale_details carries no category yet, so category profit has one bucket.
DEFAULT_CATEGORY = os.getenv("DEFAULT_CATEGORY", "General")
UNKNOWN_PRODUCT = os.getenv("UNKNOWN_PRODUCT", "Unknown Product")
WALK_IN_CUSTOMER = os.getenv("WALK_IN_CUSTOMER", "Walk-in")

DEAD_STOCK_DEFAULT_DAYS = int(os.getenv("DEAD_STOCK_DEFAULT_DAYS", "90"))
DEAD_STOCK_MIN_DAYS = int(os.getenv("DEAD_STOCK_MIN_DAYS", "30"))
DEAD_STOCK_MAX_DAYS = int(os.getenv("DEAD_STOCK_MAX_DAYS", "365"))

# Look-back windows used when a report is requested without dates.
DAILY_SALES_LOOKBACK_DAYS = 7
PAYMENT_LOOKBACK_DAYS = 7
ITEM_PROFIT_LOOKBACK_DAYS = 0
CATEGORY_PROFIT_LOOKBACK_DAYS = 30

# --- Customer Segmentation (RFM) ---
RFM_CHAMPION_MAX_RECENCY = int(os.getenv("RFM_CHAMPION_MAX_RECENCY", "30"))
RFM_CHAMPION_MIN_VISITS = int(os.getenv("RFM_CHAMPION_MIN_VISITS", "10"))
RFM_CHAMPION_MIN_SPEND = float(os.getenv("RFM_CHAMPION_MIN_SPEND", "10000"))
RFM_LOYAL_MAX_RECENCY = int(os.getenv("RFM_LOYAL_MAX_RECENCY", "90"))
RFM_LOYAL_MIN_VISITS = int(os.getenv("RFM_LOYAL_MIN_VISITS", "5"))
RFM_AT_RISK_MIN_RECENCY = int(os.getenv("RFM_AT_RISK_MIN_RECENCY", "91"))
RFM_AT_RISK_MIN_VISITS = int(os.getenv("RFM_AT_RISK_MIN_VISITS", "2"))
RFM_LOST_MIN_RECENCY = int(os.getenv("RFM_LOST_MIN_RECENCY", "181"))
