from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """统一成带时区的 UTC 时间。

    SQLite 对 DateTime(timezone=True) 会返回 naive datetime（存的就是 UTC），
    直接和 aware 的 now 比较会抛 TypeError，这里补齐时区。
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    dt = ensure_utc(value)
    return dt.isoformat() if dt is not None else None
