"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

CODE_PERIOD_SECONDS = 30
CODE_PERIOD_MS = CODE_PERIOD_SECONDS * 1000
CODE_DIGITS = 6
SESSION_SECRET_BYTES = 32

GENESIS_HASH = "GENESIS"
APPEND_MAX_ATTEMPTS = 5

REQUIRED_CLASSES = 25

MY_SESSIONS_LIMIT = 50
ADMIN_SESSIONS_LIMIT = 100

# Per-student append locks are striped over this many mutexes.
STUDENT_LOCK_STRIPES = 64

STUDENT_SEARCH_MIN_CHARS = 2
STUDENT_SEARCH_LIMIT = 20
RECENT_ATTENDANCE_LIMIT = 5
