from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import event, text
from .config import settings

# SQLite 默认值：
# - busy_timeout：降低并发写入下的 “database is locked”
# - WAL：后台 reaper 与请求并行读写
# - foreign_keys：打开外键约束（SQLite 默认关闭）；注销账号时引用由服务层显式置空
_is_sqlite = str(settings.database_url or "").startswith("sqlite")
_connect_args = {"timeout": 30} if _is_sqlite else {}

# Create async engine (supports both SQLite and PostgreSQL)
engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    future=True,
    connect_args=_connect_args,
)

if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=30000;")
        cursor.close()

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


async def get_db():
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """Initialize database tables"""
    # 确保所有模型都已被导入，从而注册到 Base.metadata
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _ensure_schema(conn)


async def _ensure_schema(conn) -> None:
    """轻量 schema 兼容：补齐后加的列与索引。

    说明：
    - 本项目未引入 Alembic；新增字段采用最小成本的自修复方式。
    - PostgreSQL 使用 IF NOT EXISTS；SQLite 通过 PRAGMA table_info 判断。
    """
    dialect = conn.dialect.name

    # 关系表：乐观锁版本号（并发 end/resume/cancel 时检测写冲突）
    if dialect == "sqlite":
        result = await conn.execute(text("PRAGMA table_info(relationships)"))
        cols = {row[1] for row in result.fetchall()}
        if "version" not in cols:
            await conn.execute(
                text("ALTER TABLE relationships ADD COLUMN version INTEGER NOT NULL DEFAULT 1")
            )
    elif dialect.startswith("postgresql"):
        await conn.execute(
            text("ALTER TABLE relationships ADD COLUMN IF NOT EXISTS version INTEGER NOT NULL DEFAULT 1")
        )

    # reaper 每次只扫 pending_deletion
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_relationships_status_ended_at ON relationships (status, ended_at)")
    )

    # 创建邀请时会查 “本人 pending 邀请”，查询 pending 邀请时按创建时间倒序
    await conn.execute(
        text(
            "CREATE INDEX IF NOT EXISTS idx_invitations_creator_status_created "
            "ON invitations (created_by, status, created_at DESC)"
        )
    )

    # 帖子流：按关系 + (created_at, id) 游标分页
    await conn.execute(
        text(
            "CREATE INDEX IF NOT EXISTS idx_posts_rel_created_id "
            "ON posts (relationship_id, created_at DESC, id DESC)"
        )
    )
