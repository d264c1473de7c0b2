"""Example: drive a kiosk node through the service layer (no Flask).

Clocks an employee in, reports whether the write went straight to the server or into
the offline queue, then drains the queue.
"""

import importlib
import sys

from config import get_settings_module

from src.shift_sync.shift_sync.container import build_container


def main(employee_id: str) -> None:
    settings = importlib.import_module(get_settings_module())
    container = build_container(
        db_config=settings.DB_CONFIG,
        remote_base_url=settings.REMOTE_BASE_URL,
        remote_api_key=settings.REMOTE_API_KEY or None,
        force_offline=settings.FORCE_OFFLINE,
    )
    api = container.api

    result = api.clock_in(employee_id)
    if not result.ok:
        print(f"clock-in refused: {result.error.value} ({result.message})")
        return
    print(f"record {result.value.id} is {result.value.sync_status.value}")

    run = api.sync.trigger().unwrap()
    print(f"sync: processed={run.processed} succeeded={run.succeeded} offline={run.offline}")
    print(api.sync.status().unwrap())


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "emp-1")
