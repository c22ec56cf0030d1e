"""
Configuration module for the Hebrew birthday sync service.
Contains Supabase/Hebcal settings, projection defaults and rate limits.
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Supabase Configuration
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# Hebcal converter API Configuration
HEBCAL_API_URL = os.getenv("HEBCAL_API_URL", "https://www.hebcal.com/converter")
HEBCAL_LANGUAGE = os.getenv("HEBCAL_LANGUAGE", "s")  # Sephardic transliterations
HEBCAL_TIMEOUT_SECONDS = float(os.getenv("HEBCAL_TIMEOUT_SECONDS", "5"))
HEBCAL_MAX_RETRIES = int(os.getenv("HEBCAL_MAX_RETRIES", "2"))

# Projection Configuration
PROJECTION_HORIZON_YEARS = int(os.getenv("PROJECTION_HORIZON_YEARS", "10"))
PROJECTION_MAX_WORKERS = int(os.getenv("PROJECTION_MAX_WORKERS", "11"))  # horizon + 1 calls in flight

# "Today" is interpreted in this timezone for every future/past comparison
CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "Asia/Jerusalem")

# Daily sweep schedule (in CALENDAR_TIMEZONE)
SWEEP_HOUR = int(os.getenv("SWEEP_HOUR", "0"))
SWEEP_MINUTE = int(os.getenv("SWEEP_MINUTE", "5"))
SWEEP_PAGE_SIZE = 1000  # Rows per Supabase page when scanning birthdays

# On-demand refresh rate limit (per caller, sliding window)
REFRESH_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("REFRESH_RATE_LIMIT_MAX_REQUESTS", "3"))
REFRESH_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("REFRESH_RATE_LIMIT_WINDOW_SECONDS", "30"))

# Webhook Configuration
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET")
WEBHOOK_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("WEBHOOK_RATE_LIMIT_MAX_REQUESTS", "100"))
WEBHOOK_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("WEBHOOK_RATE_LIMIT_WINDOW_SECONDS", "60"))
WEBHOOK_MAX_RETRIES = int(os.getenv("WEBHOOK_MAX_RETRIES", "3"))

# Tables and RPCs
BIRTHDAYS_TABLE = "birthdays"
RATE_LIMITS_TABLE = "refresh_rate_limits"
TENANT_MEMBERS_TABLE = "tenant_members"
BATCH_UPDATE_RPC = "apply_birthday_refresh_batch"

# A change to any of these columns makes the derived Hebrew fields stale
TRIGGER_COLUMNS = (
    "birth_date_gregorian",
    "after_sunset",
)

# Columns written by the synchronizer in a single update
HEBREW_COLUMNS = (
    "birth_date_hebrew_string",
    "birth_date_hebrew_year",
    "birth_date_hebrew_month",
    "birth_date_hebrew_day",
    "gregorian_year",
    "gregorian_month",
    "gregorian_day",
    "next_upcoming_hebrew_birthday",
    "next_upcoming_hebrew_year",
    "future_hebrew_birthdays",
)

# Validation configuration
REQUIRED_ENV_VARS = ["SUPABASE_URL", "SUPABASE_SERVICE_KEY"]
