from __future__ import annotations

import re
from typing import Any


_CONTROL_RE = re.compile(r"[\r\n\t]+")


def _sanitize_text(text: str, *, max_len: int) -> str:
    """把异常文本压缩成更适合日志/落盘的短字符串（避免换行、控制字符、超长）。"""
    if max_len <= 0:
        return ""
    cleaned = _CONTROL_RE.sub(" ", text).strip()
    if len(cleaned) > max_len:
        return f"{cleaned[:max_len]}…"
    return cleaned


def exception_summary(exc: BaseException, *, max_len: int = 200) -> str:
    """生成对外更安全的异常摘要：默认仅保留异常类型 + 截断后的消息。"""
    name = type(exc).__name__
    msg = _sanitize_text(str(exc), max_len=max_len)
    return f"{name}: {msg}" if msg else name


def safe_str(value: Any, *, max_len: int = 200) -> str:
    """把任意值转换为适合对外/日志展示的短文本。"""
    return _sanitize_text(str(value), max_len=max_len)


class AppError(Exception):
    """业务错误基类。

    每个子类固定一个对外错误码与 HTTP 状态码；由 main.py 的 exception handler
    统一渲染为 `{"code": ..., "detail": ...}`。服务层只抛错，不做重试。
    """

    code: str = "APP_ERROR"
    status_code: int = 400
    message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or type(self).message
        super().__init__(self.message)


class Unauthorized(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    message = "Unauthorized - Authentication required"


class Forbidden(AppError):
    code = "FORBIDDEN"
    status_code = 403
    message = "Forbidden"


class AlreadyPaired(AppError):
    code = "ALREADY_PAIRED"
    status_code = 403
    message = "You already have an active relationship"


class InvitationNotFound(AppError):
    code = "INVITATION_NOT_FOUND"
    status_code = 404
    message = "Invitation not found"


class InvitationAlreadyUsed(AppError):
    code = "INVITATION_ALREADY_USED"
    status_code = 400
    message = "Invitation has already been used or cancelled"


class InvitationExpired(AppError):
    code = "INVITATION_EXPIRED"
    status_code = 404
    message = "Invitation has expired"


class SelfInvite(AppError):
    code = "SELF_INVITE"
    status_code = 403
    message = "You cannot accept your own invitation"


class InviterAlreadyPaired(AppError):
    code = "INVITER_ALREADY_PAIRED"
    status_code = 400
    message = "Invitation creator is already in a relationship"


class CodeGenerationExhausted(AppError):
    code = "CODE_GENERATION_EXHAUSTED"
    status_code = 500
    message = "Failed to generate unique invite code. Please try again."


class NoPendingRelationship(AppError):
    code = "NO_PENDING_RELATIONSHIP"
    status_code = 404
    message = "No relationship in pending deletion state found"


class GracePeriodExpired(AppError):
    code = "GRACE_PERIOD_EXPIRED"
    status_code = 400
    message = "Grace period has expired. Relationship cannot be resumed."


class NoPendingRequest(AppError):
    code = "NO_PENDING_REQUEST"
    status_code = 404
    message = "No pending resume request found"


class NotRequester(AppError):
    code = "NOT_REQUESTER"
    status_code = 403
    message = "Only the requester can cancel the resume request"


class NotActive(AppError):
    code = "NOT_ACTIVE"
    status_code = 409
    message = "No active relationship found"


class InvalidTransition(AppError):
    code = "INVALID_TRANSITION"
    status_code = 409
    message = "Relationship cannot move to the requested state"


class ConcurrentModification(AppError):
    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    message = "Relationship was modified by another request. Please retry."


class PairingRequired(AppError):
    code = "PAIRING_REQUIRED"
    status_code = 403
    message = "You must pair with a partner before performing this action"


class PostNotFound(AppError):
    code = "POST_NOT_FOUND"
    status_code = 404
    message = "Post not found or you don't have permission to access it"


class InvalidAttachments(AppError):
    code = "INVALID_ATTACHMENTS"
    status_code = 404
    message = "One or more attachment IDs not found or already used"


class UnsupportedAttachmentType(AppError):
    code = "UNSUPPORTED_ATTACHMENT_TYPE"
    status_code = 400
    message = "Only image attachments (jpg, jpeg, png, gif, webp, heic) are supported"


class InvalidCredentials(AppError):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    message = "Invalid credentials"


class EmailTaken(AppError):
    code = "EMAIL_TAKEN"
    status_code = 409
    message = "Email already exists"


class UsernameTaken(AppError):
    code = "USERNAME_TAKEN"
    status_code = 409
    message = "Username already exists"


class ActiveRelationshipBlocksDeletion(AppError):
    code = "ACTIVE_RELATIONSHIP"
    status_code = 400
    message = "Cannot delete account while in an active relationship. Please end your relationship first."
