from __future__ import annotations

import secrets
from pathlib import Path

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_APP_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _APP_DIR.parent
_REPO_ROOT = _BACKEND_DIR.parent


def _load_root_dotenv() -> None:
    """
    统一从仓库根目录读取 `.env`（并保证其优先级最高）。

    说明：
    - 启动脚本通常会 `cd backend`，导致工具默认只会找子目录下的 `.env`。
    - 这里显式加载：先加载 `backend/.env`，再加载根目录 `.env`，并且 `override=True`。
    """

    backend_env = _BACKEND_DIR / ".env"
    root_env = _REPO_ROOT / ".env"

    for env_file in (backend_env, root_env):
        if env_file.exists():
            load_dotenv(env_file, override=True, encoding="utf-8")


class Settings(BaseSettings):
    """Application settings"""

    # Server（供 run.py 使用）
    backend_host: str = "0.0.0.0"
    backend_port: int = 31012
    backend_reload: bool = True

    # Database
    # 优先使用 DATABASE_URL；不配置时再使用 SQLITE_DB_PATH 生成 sqlite URL
    database_url: str | None = None
    sqlite_db_path: str = "relationship_journal.db"

    # API
    api_prefix: str = "/api"
    debug: bool = True
    # 是否输出 SQLAlchemy 的 SQL 日志；排查事务时再临时打开
    sql_echo: bool = False

    # CORS（逗号分隔；"*" 表示允许所有来源，此时强制关闭 allow_credentials）
    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = False
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    # 会话（登录态）
    # - SESSION_SECRET 用于签名会话 token；debug 下未配置时每个进程随机生成一个
    session_secret: str | None = None
    session_days: int = 7
    session_cookie_name: str = "journal_session"
    session_cookie_samesite: str = "lax"  # lax | strict | none
    session_cookie_secure: str = "auto"  # auto | true | false

    # 管理接口（Bearer token）；不配置则管理接口一律拒绝
    admin_token: str | None = None

    # 邀请链接的站点地址，例如 https://journal.example.com
    # 不配置时按请求 Host 推导（localhost 用 http，其余用 https）
    public_base_url: str | None = None

    # 配对 / 生命周期
    invite_ttl_days: int = 7
    invite_code_max_attempts: int = 10
    grace_period_days: int = 7

    # Reaper（宽限期到期后的清理任务）
    reaper_enabled: bool = True
    reaper_interval_minutes: int = 60
    reaper_on_startup: bool = False

    # Access Log（本地访问日志，按天落盘：<repo>/logs/YYYY-MM-DD.logs）
    access_log_enabled: bool = True
    access_log_dir: str = "logs"
    # 逗号分隔：完全匹配 path（不含 query）时跳过记录
    access_log_ignore_paths: str = "/health"
    # 是否记录 querystring（邀请码会出现在 query 里，默认关闭）
    access_log_include_query: bool = False

    @model_validator(mode="after")
    def _build_database_url_if_missing(self) -> "Settings":
        if self.database_url and self.database_url.strip():
            return self

        db_path = Path(self.sqlite_db_path)
        if not db_path.is_absolute():
            db_path = (_REPO_ROOT / db_path).resolve()

        self.database_url = f"sqlite+aiosqlite:///{db_path.as_posix()}"
        return self

    @model_validator(mode="after")
    def _normalize_lifecycle(self) -> "Settings":
        if int(self.invite_ttl_days or 0) <= 0:
            self.invite_ttl_days = 7
        if int(self.invite_code_max_attempts or 0) <= 0:
            self.invite_code_max_attempts = 10
        if int(self.grace_period_days or 0) <= 0:
            self.grace_period_days = 7
        if int(self.reaper_interval_minutes or 0) <= 0:
            self.reaper_interval_minutes = 60
        return self

    @model_validator(mode="after")
    def _normalize_session(self) -> "Settings":
        secret = (self.session_secret or "").strip()
        if not secret:
            if not self.debug:
                raise ValueError("生产模式下必须配置 SESSION_SECRET")
            # 仅用于本地调试：重启后所有会话失效
            self.session_secret = secrets.token_urlsafe(32)
        else:
            self.session_secret = secret

        if int(self.session_days or 0) <= 0:
            self.session_days = 7

        if not (self.session_cookie_name or "").strip():
            self.session_cookie_name = "journal_session"

        samesite = (self.session_cookie_samesite or "lax").strip().lower()
        if samesite not in {"lax", "strict", "none"}:
            samesite = "lax"
        self.session_cookie_samesite = samesite

        secure = (self.session_cookie_secure or "auto").strip().lower()
        if secure not in {"auto", "true", "false"}:
            secure = "auto"
        self.session_cookie_secure = secure

        admin = (self.admin_token or "").strip()
        self.admin_token = admin or None

        base_url = (self.public_base_url or "").strip().rstrip("/")
        self.public_base_url = base_url or None
        return self

    model_config = SettingsConfigDict(
        case_sensitive=False
    )


_load_root_dotenv()
settings = Settings()
