from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .common.datetime_utils import Clock, now_utc
from .container import build_container
from .database.bootstrap import apply_schema, apply_seed_sql, list_tables
from .database.memory import InMemoryDatabase
from .portal.controller import register as register_portal

REPO_ROOT = Path(__file__).resolve().parents[3]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(app: Flask, level_name: str) -> None:
    """Route the package loggers and ``app.logger`` through one handler."""
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger(__package__)
    if not package_logger.handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(level)
    app.logger.setLevel(level)


def create_app(
    settings_module: Optional[str] = None,
    *,
    memory_db: Optional[InMemoryDatabase] = None,
    clock: Clock = now_utc,
) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    setup_logging(app, getattr(settings, "LOG_LEVEL", "INFO"))

    storage_backend = getattr(settings, "STORAGE_BACKEND", "mysql")
    db_config = getattr(settings, "DB_CONFIG", None)

    if storage_backend == "mysql":
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=REPO_ROOT / "database" / "schema.sql")
            app.logger.info("schema ready (tables=%s)", len(list_tables(db_config)))
        if bool(getattr(settings, "AUTO_SEED_DB", False)):
            apply_seed_sql(db_config, seed_path=REPO_ROOT / "database" / "seed.sql")
            app.logger.info("demo seed ready")

    container = build_container(
        db_config=db_config,
        storage_backend=storage_backend,
        memory_db=memory_db,
        required_classes=int(getattr(settings, "REQUIRED_CLASSES", 25)),
        clock=clock,
    )
    app.extensions["sport_attendance"] = container

    register_portal(app, container)

    app.logger.info("sport attendance started (settings=%s, storage=%s)", settings_module, storage_backend)
    return app
