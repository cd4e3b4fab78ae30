"""Database initialization script"""
import asyncio

from app.config import settings
from app.database import init_db


async def main():
    """建表并补齐索引/后加的列（可重复执行）"""
    target = settings.database_url.split("://", 1)[0]
    print(f"Initializing database ({target})...")
    await init_db()
    print("Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(main())
