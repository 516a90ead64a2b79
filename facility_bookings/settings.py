import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
users_ms_url = os.environ.get("USERS_MS_URL", "http://localhost:8000")
activity_ms_url = os.environ.get("ACTIVITY_MS_URL", "http://localhost:8004")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

booking_currency = os.environ.get("BOOKING_CURRENCY", "MYR")
trainer_currency = os.environ.get("TRAINER_CURRENCY", "USD")

generate_schemas = os.environ.get("GENERATE_SCHEMAS", "true").lower() == "true"

TORTOISE_MODULES = {"models": ["facility_bookings.models"]}
