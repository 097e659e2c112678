# backend/api/files.py
# 功能: 文件版本 API（上传新版本、文件列表、版本列表、取版本、删版本、版本对比）
# 主要路由: /api/files/upload, /api/files, /api/files/{filename},
#           /api/files/{filename}/diff, /api/files/{filename}/{version}

"""
文件版本 API
只做参数整理和错误码映射，版本号分配和差异计算都在 core 中完成
时间一律返回原始 ISO 时间戳，格式化交给前端
"""

from functools import lru_cache
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
import logging

from core.catalog import list_files as catalog_list_files
from core.compare_service import compare_versions
from core.config import settings
from core.database import get_session_maker
from core.errors import (
    NotFound,
    StorageUnavailable,
    StoreWriteConflict,
    ValidationError,
    VersionStoreError,
)
from core.version_store import VersionStore

logger = logging.getLogger("files_api")

router = APIRouter(prefix="/api/files", tags=["files"])


@lru_cache()
def get_version_store() -> VersionStore:
    """FastAPI依赖: 进程内共享一个 VersionStore（按文件名的锁需要共享）"""
    return VersionStore(get_session_maker())


def _raise_http(e: VersionStoreError):
    """领域错误 → HTTP 状态码"""
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, NotFound):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, StoreWriteConflict):
        raise HTTPException(status_code=409, detail=str(e)) from e
    if isinstance(e, StorageUnavailable):
        logger.warning(f"[文件] 存储不可用: {e}")
        raise HTTPException(status_code=503, detail="Storage unavailable") from e
    raise HTTPException(status_code=500, detail=str(e)) from e


# ============== Schemas ==============

class UploadRequest(BaseModel):
    filename: str
    content: Optional[str] = None
    uploader: Optional[str] = None
    media_type: Optional[str] = None
    tags: Union[List[str], str, None] = None  # 列表或逗号分隔字符串
    notes: Optional[str] = None


class UploadedFile(BaseModel):
    id: str
    filename: str
    version: int
    size: int
    uploaded_at: str
    uploader: str


class UploadResponse(BaseModel):
    message: str
    file: UploadedFile


class FileItem(BaseModel):
    filename: str
    latest_version: int
    latest_created_at: str
    total_versions: int
    latest_uploader: str
    media_type: str


class VersionItem(BaseModel):
    version: int
    created_at: str
    size: int
    uploader: str
    media_type: str
    tags: List[str]
    notes: str


class VersionListResponse(BaseModel):
    filename: str
    versions: List[VersionItem]


class VersionDetail(BaseModel):
    filename: str
    version: int
    content: str
    size: int
    uploaded_at: str
    uploader: str
    media_type: str
    tags: List[str]
    notes: str


class DiffLine(BaseModel):
    text: str
    type: str  # added / removed / unchanged / gapped
    line_number: Optional[int] = None


class DiffResponse(BaseModel):
    filename: str
    from_version: int
    to_version: int
    mode: str
    left: Optional[List[DiffLine]] = None
    right: Optional[List[DiffLine]] = None
    unified: Optional[List[DiffLine]] = None
    statistics: dict


class MessageResponse(BaseModel):
    message: str


def _split_tags(tags) -> List[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        # 按逗号切分并去掉两端空白，空项保留
        return [t.strip() for t in tags.split(",")]
    return list(tags)


# ============== Endpoints ==============

@router.post("/upload", response_model=UploadResponse, status_code=201)
def upload_version(req: UploadRequest, store: VersionStore = Depends(get_version_store)):
    """保存为该文件名的下一个版本"""
    size = len(req.content.encode("utf-8")) if req.content is not None else None
    if size is not None and size > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    try:
        record = store.append_version(
            req.filename,
            req.content,
            size=size,
            uploader=req.uploader,
            media_type=req.media_type,
            tags=_split_tags(req.tags),
            notes=req.notes,
        )
    except VersionStoreError as e:
        _raise_http(e)

    return UploadResponse(
        message="File uploaded successfully",
        file=UploadedFile(
            id=record.id,
            filename=record.filename,
            version=record.version,
            size=record.size,
            uploaded_at=record.created_at.isoformat(),
            uploader=record.uploader,
        ),
    )


@router.get("", response_model=List[FileItem])
def list_files(store: VersionStore = Depends(get_version_store)):
    """每个文件一行，最近更新的在前"""
    try:
        files = catalog_list_files(store)
    except VersionStoreError as e:
        _raise_http(e)

    return [
        FileItem(
            filename=f.filename,
            latest_version=f.latest_version,
            latest_created_at=f.latest_created_at.isoformat(),
            total_versions=f.total_versions,
            latest_uploader=f.latest_uploader,
            media_type=f.media_type,
        )
        for f in files
    ]


@router.get("/{filename}", response_model=VersionListResponse)
def list_versions(filename: str, store: VersionStore = Depends(get_version_store)):
    """获取文件的所有版本（升序，不含内容）"""
    try:
        versions = store.list_versions(filename)
    except VersionStoreError as e:
        _raise_http(e)

    return VersionListResponse(
        filename=filename,
        versions=[
            VersionItem(
                version=v.version,
                created_at=v.created_at.isoformat(),
                size=v.size,
                uploader=v.uploader,
                media_type=v.media_type,
                tags=list(v.tags),
                notes=v.notes,
            )
            for v in versions
        ],
    )


# 必须在 /{filename}/{version} 之前注册，否则 "diff" 会被当作版本号解析
@router.get("/{filename}/diff", response_model=DiffResponse)
def diff_versions(
    filename: str,
    from_version: int = Query(..., ge=1),
    to_version: int = Query(..., ge=1),
    mode: str = Query("split", pattern="^(split|unified)$"),
    store: VersionStore = Depends(get_version_store),
):
    """对比两个版本"""
    try:
        comparison = compare_versions(store, filename, from_version, to_version)
    except VersionStoreError as e:
        _raise_http(e)

    if mode == "split":
        view = comparison.split()
        lines = {
            "left": [DiffLine(**line.to_dict()) for line in view.left],
            "right": [DiffLine(**line.to_dict()) for line in view.right],
        }
    else:
        lines = {"unified": [DiffLine(**line.to_dict()) for line in comparison.unified()]}

    return DiffResponse(
        filename=filename,
        from_version=from_version,
        to_version=to_version,
        mode=mode,
        statistics=comparison.stats(),
        **lines,
    )


@router.get("/{filename}/{version}", response_model=VersionDetail)
def get_version(filename: str, version: int, store: VersionStore = Depends(get_version_store)):
    """获取指定版本的完整内容"""
    try:
        record = store.get_version(filename, version)
    except VersionStoreError as e:
        _raise_http(e)

    return VersionDetail(
        filename=record.filename,
        version=record.version,
        content=record.content,
        size=record.size,
        uploaded_at=record.created_at.isoformat(),
        uploader=record.uploader,
        media_type=record.media_type,
        tags=list(record.tags),
        notes=record.notes,
    )


@router.delete("/{filename}/{version}", response_model=MessageResponse)
def delete_version(filename: str, version: int, store: VersionStore = Depends(get_version_store)):
    """删除单个版本（不重排其他版本号）"""
    try:
        store.delete_version(filename, version)
    except VersionStoreError as e:
        _raise_http(e)

    return MessageResponse(message="Version deleted successfully")
