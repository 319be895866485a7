"""Settings shared by every environment, read from environment variables."""

import os

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "sport_attendance_db"),
}

# "mysql" or "memory"
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mysql").lower()

# Confirmed classes a student needs per semester.
REQUIRED_CLASSES = int(os.getenv("REQUIRED_CLASSES", "25"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
