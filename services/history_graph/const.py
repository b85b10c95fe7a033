from __future__ import annotations

DEFAULT_HOURS_TO_SHOW = 24
DEFAULT_TIMEOUT = 10.0

# Cached points kept before the refetch cutoff so charts start with context.
LEAD_IN_POINTS = 4

CACHE_KEY_TEMPLATE = "{entity_id}_{hours_to_show}"
RAW_CACHE_KEY_SUFFIX = "-raw"

HISTORY_PERIOD_PATH = "/api/history/period"
STATE_PATH = "/api/states/{entity_id}"
