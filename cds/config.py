import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_PATH = os.getenv("DATABASE_PATH", "cds.db")

DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_MAX_CONNECTIONS = int(os.getenv("DATABASE_MAX_CONNECTIONS", "5"))

# Insert the starter set of system-defined alerts on startup (no-op once any exist)
SEED_SYSTEM_ALERTS = os.getenv("SEED_SYSTEM_ALERTS", "true").lower() in ("1", "true", "yes", "on")

# Rolling window for "recent" lab results in the evaluation context
LAB_RESULT_WINDOW_DAYS = int(os.getenv("LAB_RESULT_WINDOW_DAYS", "30"))

# Alert catalog pagination
ALERT_PAGE_SIZE_DEFAULT = int(os.getenv("ALERT_PAGE_SIZE_DEFAULT", "20"))
ALERT_PAGE_SIZE_MAX = int(os.getenv("ALERT_PAGE_SIZE_MAX", "100"))

# Bind address for the `cds-core` server entry point
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
