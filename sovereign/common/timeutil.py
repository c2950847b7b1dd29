"""
Alert timestamp helpers for Sovereign Skies.

NWS sends ISO-8601 with offsets (2025-01-03T10:00:00-08:00); ECCC sends
ISO-8601 with offsets, Z suffixes, or the compact 20250103T180000Z form.
Everything is normalized to ISO-8601 UTC strings.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z?$")


def _to_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    m = _COMPACT.match(text)
    if m:
        y, mo, d, h, mi, s = (int(g) for g in m.groups())
        try:
            return datetime(y, mo, d, h, mi, s, tzinfo=timezone.utc)
        except ValueError:
            return None
    try:
        dt = date_parser.isoparse(text)
    except ValueError:
        try:
            dt = date_parser.parse(text)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_alert_time(value: Optional[str]) -> Optional[str]:
    """경보 시각을 ISO-8601 UTC 문자열로 변환합니다. 실패하면 None."""
    dt = _to_datetime(value)
    if dt is None:
        return None
    return dt.isoformat().replace("+00:00", "Z")


def is_alert_active(effective: Optional[str], expires: Optional[str],
                    now: Optional[datetime] = None) -> bool:
    """
    경보가 현재 유효한지 확인합니다.

    시작 시각이 없으면 이미 시작된 것으로, 만료 시각이 없으면
    만료되지 않은 것으로 봅니다.
    """
    now = now or datetime.now(timezone.utc)
    start = _to_datetime(effective)
    end = _to_datetime(expires)
    if start is not None and start > now:
        return False
    if end is not None and end <= now:
        return False
    return True


def is_expired(expires: Optional[str], now: Optional[datetime] = None) -> bool:
    end = _to_datetime(expires)
    if end is None:
        return False
    return end <= (now or datetime.now(timezone.utc))
