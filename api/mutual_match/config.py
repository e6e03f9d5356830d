import os

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/mutual_match")

MATCH_TIMEZONE = os.getenv("MATCH_TIMEZONE", "America/Bogota")
MATCH_COUNT_MIN = int(os.getenv("MATCH_COUNT_MIN", "1"))
MATCH_COUNT_MAX = int(os.getenv("MATCH_COUNT_MAX", "3"))

COUNTDOWN_TICK_SECONDS = float(os.getenv("COUNTDOWN_TICK_SECONDS", "1"))
SYNC_INTERVAL_SECONDS = float(os.getenv("SYNC_INTERVAL_SECONDS", "30"))

# Wraps pair creation and both view appends in one store transaction.
ATOMIC_GENERATION = os.getenv("ATOMIC_GENERATION", "false").lower() == "true"

PROFILES_COLLECTION = "userProfiles"
PAIRS_COLLECTION = "weeklyMatches"
VIEWS_COLLECTION = "userWeeklyMatches"

JWT_SECRET = os.getenv("JWT_SECRET", "")
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"
