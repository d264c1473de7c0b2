import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "shift_sync_test"),
}

DEBUG = False
TESTING = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

NODE_ROLE = os.getenv("NODE_ROLE", "client")
REMOTE_BASE_URL = os.getenv("REMOTE_BASE_URL", "http://remote.test")
REMOTE_API_KEY = os.getenv("REMOTE_API_KEY", "test-sync-key")
REMOTE_TIMEOUT_SECONDS = 2.0

CONNECTIVITY_CHECK_URL = ""
CONNECTIVITY_CACHE_SECONDS = 0.0
FORCE_OFFLINE = True

SYNC_BATCH_SIZE = 10
SYNC_AUTO_RESOLVE = False
SYNC_RETENTION_DAYS = 7
