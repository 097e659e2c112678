# backend/core/models/file_version.py
# 功能: 文件版本模型，每行是某个文件名在某个版本号下的完整内容快照
# 主要类: FileVersion
# 数据结构: filename + version（联合唯一）+ content + 元数据(uploader/media_type/tags/notes)

"""
FileVersion 模型
每个版本保存完整内容（非增量），取任意版本和比较任意两个版本都不依赖其他行
(filename, version) 联合唯一：并发写入同一版本号时由数据库拒绝后者
"""

from typing import List

from sqlalchemy import String, Text, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import BaseModel


class FileVersion(BaseModel):
    """
    文件版本快照

    Attributes:
        filename: 文件名（同名多行，按 version 区分）
        version: 版本号（从 1 开始，由存储分配）
        content: 该版本的完整文本
        size: 写入时的字节数（保存原值，不重新计算）
        uploader: 上传者
        media_type: 声明的内容类型，仅作展示
        tags: 标签列表（保持顺序，允许重复）
        notes: 备注
    """
    __tablename__ = "file_versions"
    __table_args__ = (
        UniqueConstraint("filename", "version", name="uq_file_versions_filename_version"),
    )

    filename: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )

    version: Mapped[int] = mapped_column(
        Integer, nullable=False
    )

    content: Mapped[str] = mapped_column(
        Text, nullable=False
    )

    size: Mapped[int] = mapped_column(
        Integer, nullable=False
    )

    uploader: Mapped[str] = mapped_column(
        String(255), default="Anonymous"
    )

    media_type: Mapped[str] = mapped_column(
        String(100), default="text/plain"
    )

    tags: Mapped[List[str]] = mapped_column(
        JSON, default=list
    )

    notes: Mapped[str] = mapped_column(
        Text, default=""
    )

    def __repr__(self):
        return f"<FileVersion {self.filename} v{self.version} ({self.size} bytes)>"
