# backend/core/catalog.py
# 功能: 文件目录汇总，每个文件名一行（最新版本、版本数、最新上传者、最新时间）
# 主要函数: list_files()
# 数据结构: FileSummary

"""
文件目录

只读投影，不单独保存状态：每次从 file_versions 表按文件名分组计算。
- latest_version: 现存最大版本号
- total_versions: 现存行数（删除会减少数量，但不一定减少最大版本号）
- latest_uploader / media_type / latest_created_at: 取自最大版本号那一行
结果按 latest_created_at 倒序（最近更新的文件在前），同一时刻按文件名排序。
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List

from sqlalchemy import and_, func

from core.models import FileVersion

logger = logging.getLogger("catalog")


@dataclass(frozen=True)
class FileSummary:
    filename: str
    latest_version: int
    latest_created_at: datetime
    total_versions: int
    latest_uploader: str
    media_type: str


def list_files(store) -> List[FileSummary]:
    """列出所有至少有一个版本的文件"""
    with store.session_scope() as db:
        grouped = db.query(
            FileVersion.filename.label("filename"),
            func.max(FileVersion.version).label("latest_version"),
            func.count(FileVersion.id).label("total_versions"),
        ).group_by(FileVersion.filename).subquery()

        rows = db.query(
            FileVersion.filename,
            FileVersion.version,
            FileVersion.created_at,
            FileVersion.uploader,
            FileVersion.media_type,
            grouped.c.total_versions,
        ).join(
            grouped,
            and_(
                FileVersion.filename == grouped.c.filename,
                FileVersion.version == grouped.c.latest_version,
            ),
        ).order_by(
            FileVersion.created_at.desc(),
            FileVersion.filename.asc(),
        ).all()

    logger.debug(f"[目录] 共 {len(rows)} 个文件")
    return [
        FileSummary(
            filename=filename,
            latest_version=version,
            latest_created_at=created_at,
            total_versions=total,
            latest_uploader=uploader,
            media_type=media_type,
        )
        for filename, version, created_at, uploader, media_type, total in rows
    ]
