# backend/tests/test_files_api.py
# 功能: 文件版本 API 测试（上传、列表、取版本、删除、对比、错误码）
# 主要函数: test_*

"""
文件版本 API 测试
运行: python -m pytest tests/test_files_api.py -v
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.files import get_version_store
from core.database import Base
from core.errors import StorageUnavailable, StoreWriteConflict
from core.version_store import VersionStore
from main import app


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


@pytest.fixture
def client(store):
    app.dependency_overrides[get_version_store] = lambda: store
    c = TestClient(app)
    try:
        yield c
    finally:
        app.dependency_overrides.clear()


def _upload(client, filename, content, **extra):
    return client.post("/api/files/upload", json={"filename": filename, "content": content, **extra})


class TestUpload:

    def test_upload_assigns_versions(self, client):
        first = _upload(client, "notes.txt", "hello\n")
        assert first.status_code == 201
        body = first.json()
        assert body["message"] == "File uploaded successfully"
        assert body["file"]["version"] == 1
        assert body["file"]["size"] == 6
        assert body["file"]["uploader"] == "Anonymous"
        assert body["file"]["id"]

        assert _upload(client, "notes.txt", "hello again\n").json()["file"]["version"] == 2

    def test_comma_separated_tags(self, client):
        _upload(client, "a.txt", "x", tags="draft, docs,,", uploader="alice")
        version = client.get("/api/files/a.txt").json()["versions"][0]
        assert version["tags"] == ["draft", "docs", "", ""]
        assert version["uploader"] == "alice"

    def test_empty_tag_string(self, client):
        _upload(client, "a.txt", "x", tags="")
        assert client.get("/api/files/a.txt").json()["versions"][0]["tags"] == []

    def test_tag_list_kept_as_given(self, client):
        _upload(client, "a.txt", "x", tags=[" spaced ", "dup", "dup"])
        assert client.get("/api/files/a.txt").json()["versions"][0]["tags"] == [" spaced ", "dup", "dup"]

    def test_missing_content(self, client):
        response = client.post("/api/files/upload", json={"filename": "a.txt"})
        assert response.status_code == 400
        assert client.get("/api/files/a.txt").status_code == 404

    def test_blank_filename(self, client):
        assert _upload(client, "  ", "x").status_code == 400

    def test_missing_filename_field(self, client):
        assert client.post("/api/files/upload", json={"content": "x"}).status_code == 422

    def test_too_large(self, client, monkeypatch):
        from core.config import settings
        monkeypatch.setattr(settings, "max_upload_bytes", 4)
        assert _upload(client, "a.txt", "12345").status_code == 413


class TestRead:

    def test_list_files(self, client):
        assert client.get("/api/files").json() == []

        _upload(client, "a.txt", "1")
        _upload(client, "a.txt", "2", uploader="bob")
        _upload(client, "b.txt", "1", media_type="text/markdown")

        files = {f["filename"]: f for f in client.get("/api/files").json()}
        assert files["a.txt"]["latest_version"] == 2
        assert files["a.txt"]["total_versions"] == 2
        assert files["a.txt"]["latest_uploader"] == "bob"
        assert files["b.txt"]["media_type"] == "text/markdown"

    def test_list_versions(self, client):
        _upload(client, "a.txt", "1", notes="first")
        _upload(client, "a.txt", "2")
        body = client.get("/api/files/a.txt").json()
        assert body["filename"] == "a.txt"
        assert [v["version"] for v in body["versions"]] == [1, 2]
        assert body["versions"][0]["notes"] == "first"
        assert "content" not in body["versions"][0]

    def test_get_version(self, client):
        _upload(client, "a.txt", "line\n")
        body = client.get("/api/files/a.txt/1").json()
        assert body["content"] == "line\n"
        assert body["version"] == 1
        assert body["uploaded_at"]

    def test_not_found(self, client):
        assert client.get("/api/files/ghost.txt").status_code == 404
        _upload(client, "a.txt", "x")
        response = client.get("/api/files/a.txt/9")
        assert response.status_code == 404
        assert "v9" in response.json()["detail"]


class TestDelete:

    def test_delete_version(self, client):
        for text in ("1", "2", "3"):
            _upload(client, "a.txt", text)

        response = client.delete("/api/files/a.txt/2")
        assert response.status_code == 200
        assert response.json()["message"] == "Version deleted successfully"

        assert [v["version"] for v in client.get("/api/files/a.txt").json()["versions"]] == [1, 3]
        assert _upload(client, "a.txt", "4").json()["file"]["version"] == 4

    def test_delete_missing(self, client):
        _upload(client, "a.txt", "1")
        assert client.delete("/api/files/a.txt/5").status_code == 404


class TestDiff:

    def _two_versions(self, client):
        _upload(client, "a.txt", "foo\nbar\n")
        _upload(client, "a.txt", "foo\nbaz\n")

    def test_split_mode(self, client):
        self._two_versions(client)
        response = client.get("/api/files/a.txt/diff", params={"from_version": 1, "to_version": 2})
        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "split"
        assert body["unified"] is None
        assert body["left"] == [
            {"text": "foo", "type": "unchanged", "line_number": 1},
            {"text": "bar", "type": "removed", "line_number": 2},
            {"text": "", "type": "gapped", "line_number": None},
        ]
        assert body["right"] == [
            {"text": "foo", "type": "unchanged", "line_number": 1},
            {"text": "", "type": "gapped", "line_number": None},
            {"text": "baz", "type": "added", "line_number": 2},
        ]
        assert body["statistics"]["total_changes"] == 2

    def test_unified_mode(self, client):
        self._two_versions(client)
        body = client.get(
            "/api/files/a.txt/diff",
            params={"from_version": 1, "to_version": 2, "mode": "unified"},
        ).json()
        assert body["left"] is None
        assert [(l["text"], l["type"], l["line_number"]) for l in body["unified"]] == [
            ("foo", "unchanged", 1),
            ("bar", "removed", 2),
            ("baz", "added", 3),
        ]

    def test_missing_version(self, client):
        self._two_versions(client)
        response = client.get("/api/files/a.txt/diff", params={"from_version": 1, "to_version": 3})
        assert response.status_code == 404

    def test_bad_parameters(self, client):
        self._two_versions(client)
        assert client.get("/api/files/a.txt/diff", params={"from_version": 1}).status_code == 422
        assert client.get(
            "/api/files/a.txt/diff",
            params={"from_version": 1, "to_version": 2, "mode": "sideways"},
        ).status_code == 422


class TestErrorMapping:

    def test_write_conflict_is_409(self, client, store, monkeypatch):
        def conflict(*args, **kwargs):
            raise StoreWriteConflict("a.txt", 5)

        monkeypatch.setattr(store, "append_version", conflict)
        assert _upload(client, "a.txt", "x").status_code == 409

    def test_storage_unavailable_is_503(self, client, store, monkeypatch):
        def unavailable(*args, **kwargs):
            raise StorageUnavailable("database is locked")

        monkeypatch.setattr(store, "get_version", unavailable)
        response = client.get("/api/files/a.txt/1")
        assert response.status_code == 503
        assert response.json()["detail"] == "Storage unavailable"


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"
