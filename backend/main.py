# backend/main.py
# 功能: FastAPI应用入口，启动时建表
# 主要函数: create_app(), _setup_logging(), _ensure_db_schema_on_startup()
# 数据结构: 无

"""
File Version Diff - Backend Entry Point
启动命令: python main.py
"""

import sys
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings


# ===== 日志配置 =====
def _setup_logging():
    """配置应用日志，确保版本存储/目录/比较/API 的日志可见"""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
    datefmt = "%H:%M:%S"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # 为关键模块设置日志级别
    for name in ("version_store", "catalog", "compare_service", "files_api", "startup"):
        lg = logging.getLogger(name)
        lg.setLevel(log_level)
        if not lg.handlers:
            lg.addHandler(handler)
        lg.propagate = False  # 避免重复输出

    # root logger 保持 INFO（避免 SQLAlchemy 等噪音）
    logging.basicConfig(level=logging.INFO, format=fmt, datefmt=datefmt)


_setup_logging()


def _ensure_db_schema_on_startup():
    """启动时确保 file_versions 表存在"""
    from core.database import init_db
    init_db()
    logging.getLogger("startup").info("数据库 schema 校验完成")


def create_app() -> FastAPI:
    """创建FastAPI应用实例"""
    app = FastAPI(
        title="File Version Diff",
        description="文本文件多版本存储与差异对比",
        version="0.1.0",
    )

    # CORS配置 - 允许前端访问
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 健康检查
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "message": "File Version Diff is running"}

    # 注册路由
    from api import files

    app.include_router(files.router)

    @app.on_event("startup")
    def on_startup():
        _ensure_db_schema_on_startup()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.backend_port,
        reload=settings.debug,
    )
