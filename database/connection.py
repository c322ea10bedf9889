"""
Database connection management.
Provides SQLite database connection with async support.
"""

import os
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from utils import db_logger, config_manager, BASE_DIR


def _resolve_db_path(db_path: str) -> str:
    """相对路径相对于项目根目录"""
    if db_path == ":memory:" or os.path.isabs(db_path):
        return db_path
    return str(BASE_DIR / db_path)


def _apply_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")  # 开启WAL模式以提高并发写入性能
    cursor.execute("PRAGMA synchronous = NORMAL")
    cursor.execute("PRAGMA foreign_keys = ON")  # 确保外键约束生效
    cursor.close()


class DatabaseManager:
    """数据库管理器"""

    def __init__(self, db_path: str = None, busy_timeout: float = None):
        db_config = config_manager.get_database_config()
        self.db_path = _resolve_db_path(db_path or db_config.db_path)
        self.busy_timeout = busy_timeout if busy_timeout is not None else db_config.busy_timeout
        self.sync_engine = None
        self.async_engine = None
        self.AsyncSessionLocal = None

    @property
    def is_initialized(self) -> bool:
        return self.AsyncSessionLocal is not None

    def initialize(self):
        """初始化数据库连接"""
        if self.is_initialized:
            return

        try:
            in_memory = self.db_path == ":memory:"
            if not in_memory:
                # 确保数据目录存在
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            db_logger.info(f"[Database] Using database path: {self.db_path}")

            connect_args = {"check_same_thread": False, "timeout": self.busy_timeout}

            # 同步连接引擎，仅用于建表
            self.sync_engine = create_engine(
                f"sqlite:///{self.db_path}",
                poolclass=StaticPool if in_memory else None,
                connect_args=connect_args
            )

            # 异步连接引擎；不复用连接，避免跨事件循环共享 aiosqlite 连接
            self.async_engine = create_async_engine(
                f"sqlite+aiosqlite:///{self.db_path}",
                poolclass=StaticPool if in_memory else NullPool,
                connect_args=connect_args
            )

            if not in_memory:
                event.listen(self.sync_engine, "connect", _apply_sqlite_pragmas)
                event.listen(self.async_engine.sync_engine, "connect", _apply_sqlite_pragmas)

            # 异步会话工厂；提交后对象保持可读
            self.AsyncSessionLocal = async_sessionmaker(
                bind=self.async_engine,
                autoflush=False,
                expire_on_commit=False
            )

            db_logger.info("[Database] Database connection initialized successfully")

        except Exception as e:
            db_logger.error(f"[Database] Failed to initialize database: {e}")
            raise

    def create_tables(self):
        """创建数据库表"""
        try:
            from .models import Base

            Base.metadata.create_all(bind=self.sync_engine)
            db_logger.info("[Database] Database tables created successfully")

        except Exception as e:
            db_logger.error(f"[Database] Failed to create tables: {e}")
            raise

    def get_async_session(self) -> AsyncSession:
        """获取异步数据库会话"""
        if not self.AsyncSessionLocal:
            raise RuntimeError("Database not initialized")
        return self.AsyncSessionLocal()

    async def close(self):
        """关闭数据库连接"""
        try:
            if self.sync_engine:
                self.sync_engine.dispose()
            if self.async_engine:
                await self.async_engine.dispose()
            db_logger.info("[Database] Database connections closed")
        except Exception as e:
            db_logger.error(f"[Database] Error closing database connections: {e}")
        finally:
            self.sync_engine = None
            self.async_engine = None
            self.AsyncSessionLocal = None


# 全局数据库管理器实例
db_manager = DatabaseManager()

