import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "shift_sync"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "shift_sync"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

NODE_ROLE = os.getenv("NODE_ROLE", "client")
REMOTE_BASE_URL = os.getenv("REMOTE_BASE_URL", "")
REMOTE_API_KEY = os.getenv("REMOTE_API_KEY", "")
REMOTE_TIMEOUT_SECONDS = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))

CONNECTIVITY_CHECK_URL = os.getenv("CONNECTIVITY_CHECK_URL", "")
CONNECTIVITY_CACHE_SECONDS = float(os.getenv("CONNECTIVITY_CACHE_SECONDS", "5"))
FORCE_OFFLINE = bool(int(os.getenv("FORCE_OFFLINE", "0")))

SYNC_BATCH_SIZE = int(os.getenv("SYNC_BATCH_SIZE", "25"))
SYNC_AUTO_RESOLVE = bool(int(os.getenv("SYNC_AUTO_RESOLVE", "1")))
SYNC_RETENTION_DAYS = int(os.getenv("SYNC_RETENTION_DAYS", "7"))
