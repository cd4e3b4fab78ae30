from __future__ import annotations

import secrets

# 去掉容易看错的 I / O / 0 / 1，共 32 个字符
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """生成一次性邀请码（大写字母 + 数字，形如 `AB2CD3EF`）。"""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def normalize_invite_code(raw: str | None) -> str:
    """用户手输的邀请码：去空白、转大写；不合法字符不在这里处理，查不到即视为无效。"""
    return (raw or "").strip().upper()
