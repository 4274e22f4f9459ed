import os

from dotenv import load_dotenv

load_dotenv()

# Booking rules
BOOKING_CUTOFF_MINUTES = int(os.getenv("BOOKING_CUTOFF_MINUTES", "30"))
ADVANCE_BOOKING_DAYS = int(os.getenv("ADVANCE_BOOKING_DAYS", "28"))
MAX_PENDING_PER_DOCTOR = int(os.getenv("MAX_PENDING_PER_DOCTOR", "2"))

# Reconciliation: a same-day pending appointment turns "missed" this long after the slot ends
MISSED_GRACE_MINUTES = int(os.getenv("MISSED_GRACE_MINUTES", "60"))
# Past-date appointments without a consultation are "void" once now passes slot end + this,
# "missed" before that. Pending product clarification, hence configurable.
VOID_AFTER_MINUTES = int(os.getenv("VOID_AFTER_MINUTES", "0"))

# Remote key-value store holding the collections
STORE_BASE_URL = os.getenv("STORE_BASE_URL", "https://store.clinic.local/api")
STORE_TOKEN_URL = os.getenv("STORE_TOKEN_URL", f"{STORE_BASE_URL}/oauth2/token")
STORE_CLIENT_ID = os.getenv("STORE_CLIENT_ID")
STORE_CLIENT_SECRET = os.getenv("STORE_CLIENT_SECRET")

OFFLINE_MODE = os.getenv("OFFLINE_MODE", "0") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
