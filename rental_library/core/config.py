import logging
import os

# -----------------------------
# Environment
# -----------------------------
DATABASE_URL = os.getenv("RENTALS_DB", "sqlite:///./rental_library.db")
LOG_LEVEL = os.getenv("RENTALS_LOG", "INFO")
SQL_ECHO = os.getenv("RENTALS_SQL_ECHO", "false").lower() in ("1", "true", "yes")

# -----------------------------
# Business rules (fixed, not environment driven)
# -----------------------------
MAX_ACTIVE_RENTALS = 2
MIN_RENTAL_DAYS = 1
MAX_RENTAL_DAYS = 15
DEFAULT_RENTAL_DAYS = 15
DUE_SOON_DAYS = 1

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
