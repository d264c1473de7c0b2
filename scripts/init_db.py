"""Create the schema on the configured database and seed a first admin.

Run on the server node once, then on each kiosk (kiosks only need the schema).
INIT_ADMIN_NUMBER / INIT_ADMIN_EMAIL control the seeded account.
"""

from __future__ import annotations

import importlib
import os
import sys
import uuid
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import structlog

from config import get_settings_module

from src.shift_sync.shift_sync.auth.context import AuthContext
from src.shift_sync.shift_sync.common.logging import setup_logging
from src.shift_sync.shift_sync.container import SERVER, build_container
from src.shift_sync.shift_sync.core.enums import Role
from src.shift_sync.shift_sync.database.bootstrap import apply_schema, list_tables
from src.shift_sync.shift_sync.employees.model import Employee

logger = structlog.get_logger("init_db")


def _seed(db_config: dict) -> None:
    container = build_container(db_config=db_config, node_role=SERVER)
    number = os.getenv("INIT_ADMIN_NUMBER", "A0001")

    admin = container.employee_repo.get_by_number(number)
    if admin is None:
        now = container.clock.now()
        admin = Employee(
            id=str(uuid.uuid4()),
            employee_number=number,
            first_name="System",
            last_name="Admin",
            email=os.getenv("INIT_ADMIN_EMAIL") or None,
            role=Role.ADMIN,
            created_at=now,
            updated_at=now,
        )
        container.employee_repo.save(admin)
        logger.info("admin_seeded", employee_id=admin.id, employee_number=number)

    created = container.category_service.create_suggested(actor=AuthContext(admin.id, Role.ADMIN))
    logger.info("categories_seeded", created=[c.name for c in created])


def main() -> None:
    settings = importlib.import_module(get_settings_module())
    setup_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    db_config = dict(settings.DB_CONFIG)

    apply_schema(db_config, schema_path=REPO_ROOT / "database" / "schema.sql")
    logger.info(
        "schema_applied",
        db=f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}",
        tables=len(list_tables(db_config)),
    )

    if getattr(settings, "NODE_ROLE", "client") == SERVER:
        _seed(db_config)


if __name__ == "__main__":
    main()
