# backend/core/compare_service.py
# 功能: 比较同一文件的两个版本（读取两版内容 → 差异引擎）
# 主要函数: compare_versions()
# 数据结构: VersionComparison(filename, from_version, to_version, spans)

"""
版本比较服务

差异只计算一次，保存在 VersionComparison.spans 中；
两栏/单栏视图和统计都从同一份 spans 重新渲染，不再重复计算差异。
"""

import logging
from dataclasses import dataclass
from typing import List

from core.diff_engine import (
    DiffSpan,
    compute_diff,
    diff_stats,
    render,
    render_split,
    render_unified,
)

logger = logging.getLogger("compare_service")


@dataclass(frozen=True)
class VersionComparison:
    filename: str
    from_version: int
    to_version: int
    spans: List[DiffSpan]

    def split(self):
        return render_split(self.spans)

    def unified(self):
        return render_unified(self.spans)

    def render(self, mode: str = "split"):
        return render(self.spans, mode)

    def stats(self) -> dict:
        return diff_stats(self.spans)


def compare_versions(store, filename: str, from_version: int, to_version: int) -> VersionComparison:
    """
    比较 filename 的两个版本。

    Raises:
        NotFound: 任一版本不存在
    """
    old = store.get_version(filename, from_version)
    new = store.get_version(filename, to_version)
    spans = compute_diff(old.content, new.content)
    logger.debug(f"[比较] {filename} v{from_version} -> v{to_version}: {len(spans)} spans")
    return VersionComparison(
        filename=filename,
        from_version=from_version,
        to_version=to_version,
        spans=spans,
    )
