"""Internal constants shared across the library."""

import re

# ------------------------------------------------------------------
# Audit log layout
# ------------------------------------------------------------------

TEXT_LOG_NAME = "status_updates.log"
JSON_LOG_NAME = "status_updates.json"
ARCHIVE_PREFIX = "archived_"

# ------------------------------------------------------------------
# Defaults recorded in audit entries
# ------------------------------------------------------------------

DEFAULT_OPERATOR = "system"
DEFAULT_SOURCE = "StatusUpdater"
DEFAULT_REASON = "Manual update"
DEFAULT_ARCHIVE_DAYS = 90
DEFAULT_HISTORY_LIMIT = 50

# ------------------------------------------------------------------
# Name matching
# ------------------------------------------------------------------

DEFAULT_MATCH_THRESHOLD = 0.7
DEFAULT_SUGGESTION_THRESHOLD = 0.3
DEFAULT_MAX_SUGGESTIONS = 3

KEYWORD_STOPWORDS: frozenset[str] = frozenset({"the", "and", "or", "for", "in", "on", "at", "to", "of"})

# ------------------------------------------------------------------
# Name validation
# ------------------------------------------------------------------

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
SUSPICIOUS_NAME_CHARS = re.compile(r"[<>{}\[\]\\|`~!@#$%^&*()+=;:'\"]")
# Share of digits above which a name is flagged.
NAME_DIGIT_RATIO = 0.5

# ------------------------------------------------------------------
# Maintenance plausibility (days)
# ------------------------------------------------------------------

MAINTENANCE_STALE_DAYS = 30
MAINTENANCE_GOOD_SUSPICIOUS_DAYS = 60
MAINTENANCE_BAD_SUSPICIOUS_DAYS = 7

# ------------------------------------------------------------------
# Request context copied into audit metadata
# ------------------------------------------------------------------

REQUEST_CONTEXT_KEYS: tuple[str, ...] = ("userAgent", "ipAddress", "sessionId", "requestId")
