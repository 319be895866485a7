import os

from config.config import DB_CONFIG, REQUIRED_CLASSES  # noqa: F401

SECRET_KEY = "test-secret"

DEBUG = False
TESTING = True

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

AUTO_INIT_DB = False
AUTO_SEED_DB = False
