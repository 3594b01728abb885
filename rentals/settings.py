import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
CURRENCY = os.environ.get("CURRENCY", "gbp")
CHECKOUT_SUCCESS_URL = os.environ.get(
    "CHECKOUT_SUCCESS_URL",
    "http://localhost:3000/my-bookings/{booking_id}?session_id={CHECKOUT_SESSION_ID}",
)
CHECKOUT_CANCEL_URL = os.environ.get(
    "CHECKOUT_CANCEL_URL", "http://localhost:3000/my-bookings/{booking_id}"
)

BOOKING_REF_PREFIX = os.environ.get("BOOKING_REF_PREFIX", "SED")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
GENERATE_SCHEMAS = os.environ.get("GENERATE_SCHEMAS", "False") == "True"
