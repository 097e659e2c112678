# backend/core/database.py
# 功能: 数据库连接管理
# 主要函数: get_engine(), get_session_maker(), init_db()
# 数据结构: Base (SQLAlchemy declarative base)

"""
数据库连接管理模块
使用 SQLAlchemy 2.0，引擎按 URL 缓存，版本存储与 API 共用同一连接池
"""

from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy 声明式基类"""
    pass


def _is_memory_sqlite(url) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


@lru_cache()
def get_engine(database_url: str = None):
    """
    获取数据库引擎
    内存 SQLite 使用 StaticPool 保证所有会话看到同一个库；
    文件 SQLite 使用默认连接池，允许多个请求并发读写
    """
    url = make_url(database_url or settings.database_url)

    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=settings.debug, pool_pre_ping=True)

    connect_args = {"check_same_thread": False, "timeout": settings.db_busy_timeout}

    if _is_memory_sqlite(url):
        return create_engine(
            url,
            connect_args=connect_args,
            poolclass=StaticPool,
            echo=settings.debug,
        )

    # 文件库：确保目录存在
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args, echo=settings.debug)


def get_session_maker(database_url: str = None):
    """获取Session工厂"""
    engine = get_engine(database_url)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(database_url: str = None):
    """初始化数据库（创建所有表）"""
    engine = get_engine(database_url)
    # 导入所有模型以确保它们被注册
    from core import models  # noqa
    Base.metadata.create_all(bind=engine)
    return engine
