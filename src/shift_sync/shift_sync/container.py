from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from .api import TimeclockApi
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .common.clock import Clock, SystemClock
from .common.locks import KeyedLock
from .core.constants import DEFAULT_SYNC_BATCH_SIZE
from .database.connection import DatabaseConnection, DBConfig
from .database.store import MySQLStore
from .employees.mysql_employee_repository import MySQLEmployeeRepository
from .employees.repository import EmployeeRepository
from .employees.service import EmployeeService
from .sync.connectivity import ConnectivityService, HttpConnectivityService, StaticConnectivity
from .sync.coordinator import SyncCoordinator
from .sync.handlers import HandlerRegistry, build_registry
from .sync.mysql_sync_repository import (
    MySQLAutoResolutionRuleRepository,
    MySQLConflictRepository,
    MySQLSyncQueueRepository,
    MySQLSyncRunRepository,
)
from .sync.remote import HttpRemoteGateway, RemoteGateway
from .sync.repository import AutoResolutionRuleRepository, ConflictRepository, SyncQueueRepository, SyncRunRepository
from .sync.resolver import ConflictResolver
from .time_categories.mysql_time_category_repository import MySQLTimeCategoryRepository
from .time_categories.repository import TimeCategoryRepository
from .time_categories.service import TimeCategoryService

CLIENT = "client"
SERVER = "server"


@dataclass(frozen=True)
class Container:
    node_role: str
    clock: Clock

    attendance_repo: AttendanceRepository
    category_repo: TimeCategoryRepository
    employee_repo: EmployeeRepository
    handlers: HandlerRegistry

    attendance_service: AttendanceService
    category_service: TimeCategoryService
    employee_service: EmployeeService

    # Client nodes only: the queue and everything that drains it.
    coordinator: Optional[SyncCoordinator] = None
    api: Optional[TimeclockApi] = None

    @property
    def is_server(self) -> bool:
        return self.node_role == SERVER


def assemble(
    *,
    attendance_repo: AttendanceRepository,
    category_repo: TimeCategoryRepository,
    employee_repo: EmployeeRepository,
    clock: Clock,
    node_role: str = CLIENT,
    queue_repo: Optional[SyncQueueRepository] = None,
    conflict_repo: Optional[ConflictRepository] = None,
    rule_repo: Optional[AutoResolutionRuleRepository] = None,
    run_repo: Optional[SyncRunRepository] = None,
    remote: Optional[RemoteGateway] = None,
    connectivity: Optional[ConnectivityService] = None,
    batch_size: int = DEFAULT_SYNC_BATCH_SIZE,
    auto_resolve: bool = False,
) -> Container:
    """Wire services on top of already-built repositories (MySQL or in-memory)."""
    if node_role not in (CLIENT, SERVER):
        raise ValueError(f"NODE_ROLE must be '{CLIENT}' or '{SERVER}', got {node_role!r}")

    attendance_locks = KeyedLock()
    category_lock = threading.Lock()
    handlers = build_registry(
        attendance_repo=attendance_repo,
        category_repo=category_repo,
        employee_repo=employee_repo,
        clock=clock,
        attendance_locks=attendance_locks,
        category_lock=category_lock,
    )

    coordinator: Optional[SyncCoordinator] = None
    if node_role == CLIENT:
        if None in (queue_repo, conflict_repo, rule_repo, run_repo, remote, connectivity):
            raise ValueError("A client node needs queue, conflict, rule and run repositories plus a remote")
        resolver = ConflictResolver(
            conflicts=conflict_repo,
            rules=rule_repo,
            queue=queue_repo,
            handlers=handlers,
            remote=remote,
            clock=clock,
        )
        coordinator = SyncCoordinator(
            queue=queue_repo,
            runs=run_repo,
            resolver=resolver,
            handlers=handlers,
            remote=remote,
            connectivity=connectivity,
            clock=clock,
            batch_size=batch_size,
            auto_resolve=auto_resolve,
        )

    attendance_service = AttendanceService(
        attendance_repo,
        employee_repo,
        category_repo,
        clock=clock,
        sync=coordinator,
        locks=attendance_locks,
    )
    category_service = TimeCategoryService(category_repo, clock=clock, sync=coordinator, write_lock=category_lock)
    employee_service = EmployeeService(employee_repo, clock=clock, sync=coordinator)

    api = None
    if coordinator is not None:
        api = TimeclockApi(attendance=attendance_service, time_categories=category_service, coordinator=coordinator)

    return Container(
        node_role=node_role,
        clock=clock,
        attendance_repo=attendance_repo,
        category_repo=category_repo,
        employee_repo=employee_repo,
        handlers=handlers,
        attendance_service=attendance_service,
        category_service=category_service,
        employee_service=employee_service,
        coordinator=coordinator,
        api=api,
    )


def build_container(
    *,
    db_config: dict,
    node_role: str = CLIENT,
    remote_base_url: Optional[str] = None,
    remote_api_key: Optional[str] = None,
    remote_timeout: float = 10.0,
    connectivity_check_url: Optional[str] = None,
    connectivity_cache_seconds: float = 5.0,
    force_offline: bool = False,
    batch_size: int = DEFAULT_SYNC_BATCH_SIZE,
    auto_resolve: bool = False,
    clock: Optional[Clock] = None,
) -> Container:
    clock = clock or SystemClock()
    store = MySQLStore(DatabaseConnection(DBConfig.from_dict(db_config)))

    remote = None
    connectivity = None
    if node_role == CLIENT:
        if not remote_base_url:
            raise ValueError("REMOTE_BASE_URL is required on a client node")
        remote = HttpRemoteGateway(remote_base_url, api_key=remote_api_key, timeout=remote_timeout)
        if force_offline:
            connectivity = StaticConnectivity(False)
        else:
            connectivity = HttpConnectivityService(
                connectivity_check_url or f"{remote_base_url.rstrip('/')}/api/health",
                cache_seconds=connectivity_cache_seconds,
                clock=clock,
            )

    return assemble(
        attendance_repo=MySQLAttendanceRepository(store),
        category_repo=MySQLTimeCategoryRepository(store),
        employee_repo=MySQLEmployeeRepository(store),
        clock=clock,
        node_role=node_role,
        queue_repo=MySQLSyncQueueRepository(store),
        conflict_repo=MySQLConflictRepository(store),
        rule_repo=MySQLAutoResolutionRuleRepository(store),
        run_repo=MySQLSyncRunRepository(store),
        remote=remote,
        connectivity=connectivity,
        batch_size=batch_size,
        auto_resolve=auto_resolve,
    )
