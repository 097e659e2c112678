# backend/core/config.py
# 功能: 应用配置管理，从环境变量加载配置
# 主要类: Settings
# 数据结构: Settings(BaseSettings)

"""
配置管理模块
使用 pydantic-settings 从 .env 文件加载配置
"""

from typing import List

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """应用配置"""

    # Database
    database_url: str = "sqlite:///./data/file_versions.db"
    db_busy_timeout: float = 30.0  # SQLite 等锁超时（秒）

    # Server
    backend_port: int = 5000
    debug: bool = False
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",  # vite 开发端口
    ]

    # 版本写入: 版本号冲突时的最大尝试次数（含第一次）
    append_max_attempts: int = 5

    # 上传默认值
    default_uploader: str = "Anonymous"
    default_media_type: str = "text/plain"
    max_upload_bytes: int = 10 * 1024 * 1024

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()


settings = get_settings()
