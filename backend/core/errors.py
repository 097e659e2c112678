# backend/core/errors.py
# 功能: 版本存储的领域错误类型
# 主要类: VersionStoreError 及其子类

"""
版本存储错误

- ValidationError: 调用方输入缺失/非法，不重试
- NotFound: 文件名或版本不存在，不重试
- StoreWriteConflict: 版本号分配时的并发冲突，存储内部有限重试后仍失败才抛出
- StorageUnavailable: 数据库不可达，立即抛出，重试策略由外层决定
"""

from typing import Optional


class VersionStoreError(Exception):
    """Base exception for the version store."""


class ValidationError(VersionStoreError):
    """Raised when a required field is missing or malformed."""


class NotFound(VersionStoreError):
    """Raised when a filename or (filename, version) does not exist."""

    def __init__(self, filename: str, version: Optional[int] = None):
        self.filename = filename
        self.version = version
        if version is None:
            message = f"File not found: {filename}"
        else:
            message = f"Version not found: {filename} v{version}"
        super().__init__(message)


class StoreWriteConflict(VersionStoreError):
    """Raised when version assignment kept losing the race for a filename."""

    def __init__(self, filename: str, attempts: int):
        self.filename = filename
        self.attempts = attempts
        super().__init__(
            f"Could not assign a version for {filename} after {attempts} attempts"
        )


class StorageUnavailable(VersionStoreError):
    """Raised when the backing database cannot be reached."""
