from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse, Response

from ..config import settings
from ..database import get_db
from ..models import User
from ..schemas import MeResponse, SessionResponse, SignInRequest, SignUpRequest, UserInfo
from ..services import AccountService, RelationshipService, SessionService
from ..services.membership import get_user
from ..utils.errors import Unauthorized
from ..utils.invite_code import normalize_invite_code
from .deps import get_current_user_id, session_token
from .relationship import _relationship_info


router = APIRouter(prefix="/auth", tags=["auth"])


def _is_https(request: Request) -> bool:
    if (request.url.scheme or "").lower() == "https":
        return True

    xf_proto = request.headers.get("x-forwarded-proto")
    if xf_proto:
        first = xf_proto.split(",")[0].strip().lower()
        if first == "https":
            return True
    return False


def _resolve_cookie_secure(request: Request) -> bool:
    raw = settings.session_cookie_secure
    if raw == "true":
        return True
    if raw == "false":
        return False
    return _is_https(request)


async def _session_response(
    request: Request,
    db: AsyncSession,
    user: User,
    *,
    status_code: int = 200,
) -> Response:
    issued = await SessionService(db).open_session(user.id)
    token = issued.token
    expires = issued.expires_at
    max_age = int(settings.session_days) * 24 * 60 * 60

    view = await RelationshipService(db).get_relationship(user.id)
    body = SessionResponse(
        token=token,
        expires_at=expires.isoformat(),
        user=UserInfo.model_validate(user),
        relationship=_relationship_info(view) if view else None,
    )

    response = JSONResponse(body.model_dump(), status_code=status_code)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=max_age,
        expires=expires,
        httponly=True,
        samesite=settings.session_cookie_samesite,
        secure=_resolve_cookie_secure(request),
        path="/",
    )
    return response


@router.post("/sign-up", response_model=SessionResponse, status_code=201)
async def sign_up(body: SignUpRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """注册；带邀请码时直接完成配对"""
    invite_code = normalize_invite_code(body.invite_code) if body.invite_code else None
    result = await AccountService(db).sign_up(
        email=body.email,
        username=body.username,
        password=body.password,
        display_name=body.display_name,
        invite_code=invite_code or None,
    )
    return await _session_response(request, db, result.user, status_code=201)


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(body: SignInRequest, request: Request, db: AsyncSession = Depends(get_db)):
    user = await AccountService(db).authenticate(body.login, body.password)
    return await _session_response(request, db, user)


@router.post("/sign-out")
async def sign_out(request: Request, db: AsyncSession = Depends(get_db)) -> Response:
    # 服务端撤销会话；token 无效时也照常清 cookie
    await SessionService(db).revoke(session_token(request))
    response = Response(status_code=204)
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
    )
    return response


@router.get("/me", response_model=MeResponse)
async def me(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    user = await get_user(db, user_id)
    if user is None:
        raise Unauthorized()
    view = await RelationshipService(db).get_relationship(user_id)
    return MeResponse(
        user=UserInfo.model_validate(user),
        email=user.email,
        current_relationship_id=view.relationship.id if view else None,
    )


@router.delete("/account")
async def delete_account(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """注销账号（存在 active 关系时拒绝，需先结束关系）"""
    await AccountService(db).delete_account(user_id)
    response = Response(status_code=204)
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
    )
    return response
