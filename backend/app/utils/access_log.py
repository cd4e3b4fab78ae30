"""HTTP 访问日志：每个请求一行 logfmt，按天落到 ACCESS_LOG_DIR/YYYY-MM-DD.logs"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from pathlib import Path

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from .. import config as config_module
from ..config import settings

_FILE_LOCK = threading.Lock()
_NEEDS_QUOTE = frozenset(' "=\\')
_MAX_VALUE_LEN = 300


def _render(value: object) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)

    text = " ".join(str(value).split())
    if len(text) > _MAX_VALUE_LEN:
        text = text[:_MAX_VALUE_LEN] + "…"
    if any(ch in _NEEDS_QUOTE for ch in text):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def format_access_line(fields: dict[str, object]) -> str:
    """空值字段直接省略，保证每行只有有意义的 key。"""
    parts = []
    for key, value in fields.items():
        rendered = _render(value)
        if rendered is not None:
            parts.append(f"{key}={rendered}")
    return " ".join(parts)


def log_file_for(day: datetime) -> Path:
    log_dir = Path(settings.access_log_dir)
    if not log_dir.is_absolute():
        log_dir = config_module._REPO_ROOT / log_dir
    return log_dir / f"{day:%Y-%m-%d}.logs"


def _write(line: str, day: datetime) -> None:
    path = log_file_for(day)
    path.parent.mkdir(parents=True, exist_ok=True)
    with _FILE_LOCK, path.open("a", encoding="utf-8", newline="\n") as f:
        f.write(line + "\n")


def _client_ip(request: Request) -> str | None:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _ignored(path: str) -> bool:
    ignore = {p.strip() for p in (settings.access_log_ignore_paths or "").split(",") if p.strip()}
    return path in ignore


async def log_http_request(
    request: Request,
    *,
    status_code: int,
    duration_ms: int,
    error: str | None = None,
    request_id: str | None = None,
    user_id: int | None = None,
) -> None:
    if not settings.access_log_enabled or _ignored(request.url.path):
        return

    now = datetime.now().astimezone()
    line = format_access_line(
        {
            "ts": now.isoformat(timespec="seconds"),
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query if settings.access_log_include_query else None,
            "status": status_code,
            "dur_ms": duration_ms,
            "rid": request_id,
            "uid": user_id,
            "ip": _client_ip(request),
            "ua": request.headers.get("user-agent"),
            "error": error,
        }
    )
    await run_in_threadpool(_write, line, now)


class AccessLogTimer:
    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)
