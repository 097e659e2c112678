# backend/core/models/__init__.py
# 功能: 模型包入口，导出所有SQLAlchemy模型
# 包含: FileVersion, FileSequence

"""
数据模型包
导出所有SQLAlchemy模型供其他模块使用
"""

from core.models.base import BaseModel, generate_uuid, utcnow
from core.models.file_version import FileVersion
from core.models.file_sequence import FileSequence

__all__ = [
    # 基础
    "BaseModel",
    "generate_uuid",
    "utcnow",

    # 文件版本
    "FileVersion",
    "FileSequence",
]
