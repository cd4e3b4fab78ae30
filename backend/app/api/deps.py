"""路由共用的依赖：会话解析、管理员校验、对外 base url"""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..services.membership import get_user
from ..services.sessions import SessionService
from ..utils.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str | None:
    raw = request.headers.get("authorization") or ""
    scheme, _, value = raw.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


def session_token(request: Request) -> str | None:
    # cookie 优先；API 客户端可以用 Authorization: Bearer
    return request.cookies.get(settings.session_cookie_name) or _bearer_token(request)


async def get_current_user_id(request: Request, db: AsyncSession = Depends(get_db)) -> int:
    user_id, reason = await SessionService(db).resolve(session_token(request))
    if user_id is None:
        if reason != "missing":
            logger.info("[AUTH] Rejected session token: %s", reason)
        raise Unauthorized()

    # 账号已注销但 token 还没过期
    if await get_user(db, user_id) is None:
        raise Unauthorized()

    request.state.user_id = user_id
    return user_id


def require_admin(request: Request) -> None:
    expected = settings.admin_token
    if not expected:
        # 未配置 ADMIN_TOKEN 时管理接口整体关闭
        raise Forbidden("Admin endpoints are disabled")
    provided = _bearer_token(request)
    if not provided:
        raise Unauthorized()
    if not hmac.compare_digest(provided, expected):
        raise Unauthorized()


def resolve_base_url(request: Request) -> str:
    """邀请链接的站点地址：优先 PUBLIC_BASE_URL，否则按请求 Host 推断。"""
    if settings.public_base_url:
        return settings.public_base_url

    host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
    if not host:
        host = request.url.netloc or "localhost"
    hostname = host.split(":")[0].lower()
    scheme = "http" if hostname in {"localhost", "127.0.0.1"} else "https"
    return f"{scheme}://{host}"
