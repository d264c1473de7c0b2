"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

MAX_SYNC_ATTEMPTS = 5
INITIAL_RETRY_DELAY_MS = 1000
DEFAULT_SYNC_BATCH_SIZE = 10
DEFAULT_COMPLETED_RETENTION_DAYS = 7

MAX_NOTES_LENGTH = 500

MAX_CATEGORY_HOURS = 24
MAX_PAY_MULTIPLIER = 10
CATEGORY_NAME_MIN_LENGTH = 2
CATEGORY_NAME_MAX_LENGTH = 50
DEFAULT_CATEGORY_COLOR = "#007bff"

# Fields never compared when diffing two copies of an entity.
SYNC_METADATA_FIELDS = frozenset({"id", "created_at", "updated_at", "last_sync_at"})
