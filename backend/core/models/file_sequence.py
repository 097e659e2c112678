# backend/core/models/file_sequence.py
# 功能: 每个文件名已分配过的最大版本号（高水位），保证删除后版本号不被复用
# 主要类: FileSequence
# 数据结构: filename(主键) + last_version

"""
FileSequence 模型
只增不减；文件名的全部版本被删除时整行删除，下一次写入从 1 开始
"""

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class FileSequence(Base):
    __tablename__ = "file_sequences"

    filename: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<FileSequence {self.filename} last=v{self.last_version}>"
