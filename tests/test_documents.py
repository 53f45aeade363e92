import hashlib
import io
import os

import pytest

from astralis.core.config import settings
from astralis.db.models import Document
from astralis.services import document_service


@pytest.fixture(autouse=True)
def local_storage(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(tmp_path))
    return tmp_path


@pytest.mark.parametrize(
    "content_type,size,expected",
    [
        ("application/pdf", 1024, None),
        ("application/x-msdownload", 1024, "Content type 'application/x-msdownload' not allowed"),
        ("text/plain", 0, "File is empty"),
        ("image/png", document_service.MAX_FILE_SIZE_BYTES + 1, "File size exceeds 25 MB limit"),
    ],
)
def test_validate_file(content_type, size, expected):
    assert document_service.validate_file(content_type, size) == expected


def test_upload_stores_file_locally(db, test_org, test_user, local_storage):
    payload = b"quarterly numbers"

    document = document_service.upload_document(
        db,
        test_org.id,
        test_user.id,
        filename="Report.CSV",
        content_type="text/csv",
        file=io.BytesIO(payload),
        file_size=len(payload),
        tags=["finance"],
    )

    assert document.checksum_sha256 == hashlib.sha256(payload).hexdigest()
    assert document.storage_key == f"{test_org.id}/documents/{document.id}.csv"
    with open(os.path.join(local_storage, document.storage_key), "rb") as f:
        assert f.read() == payload


def test_upload_rejects_invalid_file(db, test_org, test_user):
    with pytest.raises(ValueError, match="not allowed"):
        document_service.upload_document(
            db,
            test_org.id,
            test_user.id,
            filename="setup.exe",
            content_type="application/x-msdownload",
            file=io.BytesIO(b"MZ"),
            file_size=2,
        )
    assert db.query(Document).count() == 0


def test_soft_delete_hides_document(db, test_org, other_org, test_user):
    document = document_service.upload_document(
        db,
        test_org.id,
        test_user.id,
        filename="notes.txt",
        content_type="text/plain",
        file=io.BytesIO(b"hi"),
        file_size=2,
    )

    assert document_service.soft_delete_document(db, other_org.id, document.id) is False
    assert document_service.soft_delete_document(db, test_org.id, document.id) is True

    assert document_service.list_documents(db, test_org.id) == []
    assert document_service.get_document(db, test_org.id, document.id) is None
    assert db.query(Document).one().deleted_at is not None


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_document_api_flow(authed_client):
    res = await authed_client.post(
        "/documents",
        files={"file": ("brief.pdf", b"%PDF-1.4 brief", "application/pdf")},
        data={"title": "Client brief"},
    )
    assert res.status_code == 201, res.text
    document = res.json()
    assert document["title"] == "Client brief"
    assert document["status"] == "COMPLETED"
    assert document["file_size"] == len(b"%PDF-1.4 brief")

    res = await authed_client.get("/documents")
    assert [d["id"] for d in res.json()] == [document["id"]]

    res = await authed_client.get(f"/documents/{document['id']}/download")
    body = res.json()
    assert body["file_name"] == "brief.pdf"
    assert body["download_url"].endswith(f"{document['id']}.pdf")
    assert body["expires_in_seconds"] == 300

    res = await authed_client.delete(f"/documents/{document['id']}")
    assert res.status_code == 204
    res = await authed_client.get(f"/documents/{document['id']}")
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_upload_api_rejects_bad_type(authed_client):
    res = await authed_client.post(
        "/documents",
        files={"file": ("run.sh", b"#!/bin/sh", "application/x-sh")},
    )
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_upload_api_checks_pipeline(authed_client):
    res = await authed_client.post(
        "/documents",
        files={"file": ("a.txt", b"a", "text/plain")},
        data={"pipeline_id": "00000000-0000-0000-0000-000000000000"},
    )
    assert res.status_code == 404
