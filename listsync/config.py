import os

DATABASE_URL = os.environ.get(
    "LISTSYNC_DATABASE_URL", "sqlite+aiosqlite:///./listsync.db"
)
DATABASE_ECHO = os.environ.get("LISTSYNC_DB_ECHO", "false").lower() == "true"

SECRET_KEY = os.environ.get(
    "JWT_SECRET_KEY", "fallback-insecure-key-use-env-var-in-prod"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(
    os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24))
)

LOG_LEVEL = os.environ.get("LISTSYNC_LOG_LEVEL", "INFO").upper()

ITEM_NAME_MAX_LENGTH = 200
NOTES_MAX_LENGTH = 500
QUANTITY_MAX_LENGTH = 50
MENU_NAME_MAX_LENGTH = 200
LIST_NAME_MAX_LENGTH = 200

DEFAULT_QUANTITY = "1"
DEFAULT_NOTES = ""

DEFAULT_CATEGORIES = [
    ("Produce", "#16a34a"),
    ("Meat", "#dc2626"),
    ("Dairy", "#2563eb"),
    ("Bakery", "#d97706"),
    ("Frozen", "#0891b2"),
    ("Beverages", "#7c3aed"),
    ("Snacks", "#ea580c"),
    ("Canned Goods", "#92400e"),
    ("Household", "#4f46e5"),
    ("Personal Care", "#db2777"),
    ("Other", "#737373"),
]
