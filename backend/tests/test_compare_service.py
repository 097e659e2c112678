# backend/tests/test_compare_service.py
# 功能: 测试两个版本的比较流程（取版本 → 差异 → 视图/统计）
# 主要函数: test_*

"""
版本比较测试
运行: python -m pytest tests/test_compare_service.py -v
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.compare_service import compare_versions
from core.database import Base
from core.diff_engine import DiffOp, LineKind
from core.errors import NotFound
from core.version_store import VersionStore


@pytest.fixture
def store():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield VersionStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


class TestCompareVersions:

    def test_compare_two_versions(self, store):
        store.append_version("a.txt", "foo\nbar\n")
        store.append_version("a.txt", "foo\nbaz\n")

        comparison = compare_versions(store, "a.txt", 1, 2)

        assert (comparison.filename, comparison.from_version, comparison.to_version) == ("a.txt", 1, 2)
        assert "".join(s.text for s in comparison.spans if s.op != DiffOp.INSERT) == "foo\nbar\n"
        assert "".join(s.text for s in comparison.spans if s.op != DiffOp.DELETE) == "foo\nbaz\n"

        view = comparison.split()
        assert [l.kind for l in view.left] == [LineKind.UNCHANGED, LineKind.REMOVED, LineKind.GAPPED]
        assert [l.kind for l in view.right] == [LineKind.UNCHANGED, LineKind.GAPPED, LineKind.ADDED]
        assert [l.text for l in comparison.unified()] == ["foo", "bar", "baz"]

    def test_views_share_one_edit_script(self, store):
        store.append_version("a.txt", "one\n")
        store.append_version("a.txt", "one\ntwo\n")
        comparison = compare_versions(store, "a.txt", 1, 2)

        assert comparison.render("split") == comparison.split()
        assert comparison.render("unified") == comparison.unified()
        assert comparison.stats()["added_lines"] == 1

    def test_reverse_direction(self, store):
        store.append_version("a.txt", "one\n")
        store.append_version("a.txt", "one\ntwo\n")
        stats = compare_versions(store, "a.txt", 2, 1).stats()
        assert stats["removed_lines"] == 1
        assert stats["added_lines"] == 0

    def test_same_version_has_no_changes(self, store):
        store.append_version("a.txt", "x\ny\n")
        assert compare_versions(store, "a.txt", 1, 1).stats()["total_changes"] == 0

    def test_missing_version(self, store):
        store.append_version("a.txt", "x")
        with pytest.raises(NotFound) as exc_info:
            compare_versions(store, "a.txt", 1, 7)
        assert exc_info.value.version == 7

    def test_missing_file(self, store):
        with pytest.raises(NotFound):
            compare_versions(store, "ghost.txt", 1, 2)
