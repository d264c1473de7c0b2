from __future__ import annotations

import importlib
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .common.logging import setup_logging
from .common.web import ok, register_error_handlers
from .container import Container, build_container
from .database.bootstrap import apply_schema, list_tables
from .employees.controller import register as register_employees
from .sync.controller import register as register_sync
from .time_categories.controller import register as register_time_categories

logger = structlog.get_logger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    """Application factory; pass a prebuilt container to skip database wiring."""
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["SYNC_API_KEY"] = getattr(settings, "REMOTE_API_KEY", "") or None
    setup_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "app_starting",
            settings=settings_module,
            db=f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}",
        )

        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            logger.info("schema_ready", tables=len(list_tables(db_config)))

        container = build_container(
            db_config=db_config,
            node_role=getattr(settings, "NODE_ROLE", "client"),
            remote_base_url=getattr(settings, "REMOTE_BASE_URL", None),
            remote_api_key=getattr(settings, "REMOTE_API_KEY", None) or None,
            remote_timeout=float(getattr(settings, "REMOTE_TIMEOUT_SECONDS", 10)),
            connectivity_check_url=getattr(settings, "CONNECTIVITY_CHECK_URL", None) or None,
            connectivity_cache_seconds=float(getattr(settings, "CONNECTIVITY_CACHE_SECONDS", 5)),
            force_offline=bool(getattr(settings, "FORCE_OFFLINE", False)),
            batch_size=int(getattr(settings, "SYNC_BATCH_SIZE", 10)),
            auto_resolve=bool(getattr(settings, "SYNC_AUTO_RESOLVE", False)),
        )
        if container.coordinator is not None:
            container.coordinator.recover()

    app.extensions["shift_sync"] = container
    register_error_handlers(app)

    @app.route("/api/health", methods=["GET"], endpoint="health")
    def health():
        return ok(node_role=container.node_role)

    register_employees(app, container)
    register_time_categories(app, container)
    register_attendance(app, container)
    register_sync(app, container)

    return app
