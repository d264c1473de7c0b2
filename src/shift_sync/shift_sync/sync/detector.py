from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..common.datetime_utils import try_parse_iso_datetime
from ..core.constants import SYNC_METADATA_FIELDS
from ..core.enums import ConflictType
from .model import ConflictDetectionResult

NO_CONFLICT = ConflictDetectionResult(has_conflict=False)


def _normalize(value: Any) -> str:
    # Payloads travel as JSON, so 8 and 8.0 or a datetime and its ISO string compare equal.
    if isinstance(value, datetime):
        value = value.isoformat()
    if isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
    return json.dumps(value, sort_keys=True, default=str)


def diff_fields(
    local: Dict[str, Any],
    remote: Dict[str, Any],
    *,
    ignore: Iterable[str] = SYNC_METADATA_FIELDS,
) -> List[str]:
    skip = set(ignore)
    keys = sorted((set(local) | set(remote)) - skip)
    return [k for k in keys if _normalize(local.get(k)) != _normalize(remote.get(k))]


def _modified_after(data: Dict[str, Any], since: datetime) -> bool:
    updated_at = try_parse_iso_datetime(data.get("updated_at"))
    return updated_at is not None and updated_at > since


def detect_conflict(
    local_data: Optional[Dict[str, Any]],
    remote_data: Optional[Dict[str, Any]],
    last_sync_at: Optional[datetime] = None,
) -> ConflictDetectionResult:
    if local_data is None and remote_data is None:
        return NO_CONFLICT

    if local_data is None or remote_data is None:
        return ConflictDetectionResult(has_conflict=True, conflict_type=ConflictType.DELETION)

    fields = diff_fields(local_data, remote_data)
    if not fields:
        return NO_CONFLICT

    racing = last_sync_at is None or (
        _modified_after(local_data, last_sync_at) and _modified_after(remote_data, last_sync_at)
    )
    conflict_type = ConflictType.TIMESTAMP if racing else ConflictType.DATA
    return ConflictDetectionResult(has_conflict=True, conflict_type=conflict_type, conflict_fields=fields)
