from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any

_TOKEN_VERSION = 2


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    session_id: str
    expires_at: int


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(payload_b64url: str, secret: str) -> str:
    sig = hmac.new(
        secret.encode("utf-8"),
        payload_b64url.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return _b64url_encode(sig)


def issue_session_token(
    user_id: int,
    *,
    session_id: str,
    secret: str,
    days: int,
    now: int | None = None,
) -> str:
    """签发会话 token：`<payload_b64>.<sig_b64>`，payload 为 uid / sid / 有效期。"""
    issued_at = int(now if now is not None else time.time())
    days = int(days or 0)
    if days <= 0:
        days = 7

    payload = {
        "v": _TOKEN_VERSION,
        "uid": int(user_id),
        "sid": session_id,
        "iat": issued_at,
        "exp": issued_at + days * 24 * 60 * 60,
    }
    payload_raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    payload_b64 = _b64url_encode(payload_raw)
    return f"{payload_b64}.{_sign(payload_b64, secret)}"


def verify_session_token(
    token: str | None,
    *,
    secret: str,
    now: int | None = None,
) -> tuple[SessionClaims | None, str]:
    """只校验签名与有效期，返回 (claims, reason)；会话是否已撤销由调用方回表确认。"""
    if not token or not token.strip():
        return None, "missing"

    parts = token.strip().split(".")
    if len(parts) != 2:
        return None, "format"

    payload_b64, sig_b64 = parts
    if not hmac.compare_digest(_sign(payload_b64, secret), sig_b64):
        return None, "bad_sig"

    try:
        payload: Any = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None, "bad_payload"
    if not isinstance(payload, dict):
        return None, "bad_payload"

    if payload.get("v") != _TOKEN_VERSION:
        return None, "bad_version"

    exp = payload.get("exp")
    if not isinstance(exp, int):
        return None, "bad_exp"
    now_int = int(now if now is not None else time.time())
    if exp < now_int:
        return None, "expired"

    uid = payload.get("uid")
    if not isinstance(uid, int) or isinstance(uid, bool) or uid <= 0:
        return None, "bad_uid"

    sid = payload.get("sid")
    if not isinstance(sid, str) or not sid:
        return None, "bad_sid"

    return SessionClaims(user_id=uid, session_id=sid, expires_at=exp), "ok"
