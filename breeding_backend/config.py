import os

# Configuration via environment variables with sensible defaults
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# PostgreSQL configuration
DATABASE_URL = os.getenv("DATABASE_URL", "")
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "5"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "20"))
DB_TIMEOUT = int(os.getenv("DB_TIMEOUT", "60"))  # Connection timeout in seconds

# Repository selection: in-memory store when disabled (local dev, tests)
USE_POSTGRES = bool(os.getenv("USE_POSTGRES", "false").lower() in ("true", "1", "yes"))

# Authentication and security
ADMIN_SECRET = os.getenv("ADMIN_SECRET", "")
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "")
GOOGLE_APPLICATION_CREDENTIALS = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")

# Breeding calculations
CALCULATION_CACHE_TTL_SECONDS = int(os.getenv("CALCULATION_CACHE_TTL_SECONDS", "3600"))
BATCH_STALE_HOURS = int(os.getenv("BATCH_STALE_HOURS", "24"))
BATCH_DEFAULT_LIMIT = int(os.getenv("BATCH_DEFAULT_LIMIT", "1000"))

# Nightly batch client
BREEDING_API_URL = os.getenv("BREEDING_API_URL", f"http://localhost:{PORT}")
BREEDING_REQUEST_TIMEOUT = int(os.getenv("BREEDING_REQUEST_TIMEOUT", "300"))
