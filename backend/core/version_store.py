# backend/core/version_store.py
# 功能: 文件版本存储，版本号分配/查询/删除的唯一入口
# 主要类: VersionStore
# 数据结构: VersionInput(写入参数，带默认值), VersionRecord(完整快照), VersionSummary(列表项，不含内容)
#
# 并发设计: 同一文件名的「计算下一版本号 + 插入」在进程内由按文件名的锁串行化，
#           跨进程由 (filename, version) 唯一约束兜底，冲突后有限次重试

"""
版本存储服务。

下一版本号 = 该文件名分配过的最大版本号 + 1（没有则为 1）。
删除不重排版本号，被删除的版本号也不再分配（包括删除最大版本）；
全部版本被删除后，分配记录一并清除，下一次写入从 1 开始。
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, defer

from core.config import settings
from core.errors import NotFound, StorageUnavailable, StoreWriteConflict, ValidationError
from core.models import FileSequence, FileVersion, utcnow

logger = logging.getLogger("version_store")


# ============== 数据结构 ==============

@dataclass(frozen=True)
class VersionInput:
    """
    一次写入的参数。可选字段在构造时统一补默认值，调用处不再各自处理。

    uploader / media_type 为空字符串时同样使用默认值。
    size 缺省时按 UTF-8 字节数计算。
    """
    filename: str
    content: str
    size: Optional[int] = None
    uploader: Optional[str] = None
    media_type: Optional[str] = None
    tags: Tuple[str, ...] = ()
    notes: str = ""

    @classmethod
    def build(
        cls,
        filename: str,
        content: Optional[str],
        size: Optional[int] = None,
        uploader: Optional[str] = None,
        media_type: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        notes: Optional[str] = None,
    ) -> "VersionInput":
        """校验输入并补齐默认值"""
        if not isinstance(filename, str) or not filename.strip():
            raise ValidationError("filename is required")
        if content is None:
            raise ValidationError("content is required")
        if not isinstance(content, str):
            raise ValidationError("content must be decoded text")

        if size is None:
            size = len(content.encode("utf-8"))
        elif isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValidationError("size must be a non-negative integer")

        tag_list = tuple(tags) if tags is not None else ()
        if not all(isinstance(t, str) for t in tag_list):
            raise ValidationError("tags must be strings")

        return cls(
            filename=filename,
            content=content,
            size=size,
            uploader=uploader or settings.default_uploader,
            media_type=media_type or settings.default_media_type,
            tags=tag_list,
            notes=notes or "",
        )


@dataclass(frozen=True)
class VersionSummary:
    """版本列表项（不含内容）"""
    filename: str
    version: int
    size: int
    uploader: str
    media_type: str
    tags: Tuple[str, ...]
    notes: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: FileVersion) -> "VersionSummary":
        return cls(
            filename=row.filename,
            version=row.version,
            size=row.size,
            uploader=row.uploader,
            media_type=row.media_type,
            tags=tuple(row.tags or ()),
            notes=row.notes or "",
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class VersionRecord:
    """一个版本的完整不可变快照"""
    id: str
    filename: str
    version: int
    content: str
    size: int
    uploader: str
    media_type: str
    tags: Tuple[str, ...]
    notes: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: FileVersion) -> "VersionRecord":
        return cls(
            id=row.id,
            filename=row.filename,
            version=row.version,
            content=row.content,
            size=row.size,
            uploader=row.uploader,
            media_type=row.media_type,
            tags=tuple(row.tags or ()),
            notes=row.notes or "",
            created_at=row.created_at,
        )


# ============== 按文件名的锁 ==============

class _FilenameLocks:
    """
    按文件名分配互斥锁，不同文件名互不阻塞。
    引用计数归零时移除条目，避免文件名越来越多时无限增长。
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # filename -> [lock, refcount]

    @contextmanager
    def hold(self, filename: str):
        with self._guard:
            entry = self._locks.get(filename)
            if entry is None:
                entry = self._locks[filename] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[filename]

    def __len__(self):
        with self._guard:
            return len(self._locks)


# ============== 存储 ==============

class VersionStore:
    """
    文件版本存储

    每个操作使用独立的 Session，操作结束即提交或回滚；
    返回值都是冻结的 dataclass，不把 ORM 对象暴露给调用方。
    """

    def __init__(self, session_factory, max_attempts: Optional[int] = None):
        self._session_factory = session_factory
        if max_attempts is None:
            max_attempts = settings.append_max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self._locks = _FilenameLocks()

    @contextmanager
    def session_scope(self):
        """打开一个 Session；连接层错误统一转换为 StorageUnavailable"""
        db: Session = self._session_factory()
        try:
            yield db
        except (OperationalError, InterfaceError) as e:
            raise StorageUnavailable(str(e.orig or e)) from e
        finally:
            db.close()

    # ---------- 写入 ----------

    def append_version(
        self,
        filename: str,
        content: Optional[str],
        size: Optional[int] = None,
        uploader: Optional[str] = None,
        media_type: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        notes: Optional[str] = None,
    ) -> VersionRecord:
        """
        以「当前最大版本号 + 1」写入新版本。

        Raises:
            ValidationError: 缺少内容或字段非法
            StoreWriteConflict: 连续 max_attempts 次被其他写入者抢占同一版本号
            StorageUnavailable: 数据库不可达
        """
        data = VersionInput.build(
            filename, content, size=size, uploader=uploader,
            media_type=media_type, tags=tags, notes=notes,
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                with self._locks.hold(data.filename):
                    record = self._insert_next(data)
            except IntegrityError:
                logger.warning(
                    f"[版本] {data.filename} 版本号冲突，重试 ({attempt}/{self.max_attempts})"
                )
                continue
            logger.info(f"[版本] 保存 {record.filename} v{record.version} ({record.size} bytes)")
            return record

        raise StoreWriteConflict(data.filename, self.max_attempts)

    def _insert_next(self, data: VersionInput) -> VersionRecord:
        with self.session_scope() as db:
            version = self._next_version(db, data.filename)
            seq = db.get(FileSequence, data.filename)
            if seq is None:
                db.add(FileSequence(filename=data.filename, last_version=version))
            else:
                seq.last_version = version

            row = FileVersion(
                filename=data.filename,
                version=version,
                content=data.content,
                size=data.size,
                uploader=data.uploader,
                media_type=data.media_type,
                tags=list(data.tags),
                notes=data.notes,
                created_at=utcnow(),
            )
            db.add(row)
            try:
                db.flush()
                record = VersionRecord.from_row(row)
                db.commit()
            except IntegrityError:
                db.rollback()
                raise
            return record

    @staticmethod
    def _next_version(db: Session, filename: str) -> int:
        max_ver = db.query(func.max(FileVersion.version)).filter(
            FileVersion.filename == filename
        ).scalar() or 0
        seq = db.get(FileSequence, filename)
        if seq is not None:
            max_ver = max(max_ver, seq.last_version)
        return max_ver + 1

    def delete_version(self, filename: str, version: int) -> None:
        """
        删除单个版本，不重排其他版本号。

        Raises:
            NotFound: 版本不存在（此时该文件的版本序列不变）
        """
        with self._locks.hold(filename):
            with self.session_scope() as db:
                deleted = db.query(FileVersion).filter(
                    FileVersion.filename == filename,
                    FileVersion.version == version,
                ).delete(synchronize_session=False)
                if not deleted:
                    db.rollback()
                    raise NotFound(filename, version)

                remaining = db.query(func.count(FileVersion.id)).filter(
                    FileVersion.filename == filename
                ).scalar()
                if not remaining:
                    db.query(FileSequence).filter(
                        FileSequence.filename == filename
                    ).delete(synchronize_session=False)
                db.commit()
        logger.info(f"[版本] 删除 {filename} v{version}")

    # ---------- 读取 ----------

    def get_version(self, filename: str, version: int) -> VersionRecord:
        """获取指定版本；不存在时抛出 NotFound"""
        with self.session_scope() as db:
            row = db.query(FileVersion).filter(
                FileVersion.filename == filename,
                FileVersion.version == version,
            ).first()
            if row is None:
                raise NotFound(filename, version)
            return VersionRecord.from_row(row)

    def list_versions(self, filename: str) -> List[VersionSummary]:
        """按版本号升序列出；没有任何版本时抛出 NotFound"""
        with self.session_scope() as db:
            rows = db.query(FileVersion).filter(
                FileVersion.filename == filename,
            ).options(defer(FileVersion.content)).order_by(FileVersion.version.asc()).all()
            if not rows:
                raise NotFound(filename)
            return [VersionSummary.from_row(r) for r in rows]
