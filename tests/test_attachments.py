"""Tests for project attachments and the local object storage backend.

Coverage:
  1. Upload / list / download / delete round-trip through storage
  2. Empty and oversized files rejected before anything is stored
  3. safe_file_name and storage keys
  4. Keys that escape the storage root are refused
"""

import os

import pytest

from conftest import OWNER_ID
from consultflow.core.exceptions import NotFoundError, ValidationError
from consultflow.integrations.object_storage import (
    StorageError,
    build_storage_key,
    safe_file_name,
)
from consultflow.services import attachment_service


class TestAttachmentService:
    def test_upload_list_download_delete(self, tenant, project, storage):
        pid = project["id"]
        meta = attachment_service.upload(
            tenant.id, pid, "Payroll 2025.xlsx", b"cells",
            uploaded_by=OWNER_ID, content_type="application/vnd.ms-excel", phase=4,
        )

        assert meta["file_name"] == "Payroll_2025.xlsx"
        assert meta["file_size"] == 5
        assert meta["storage_path"].startswith(f"{tenant.id}/{pid}/")
        assert os.path.isfile(os.path.join(storage.root, meta["storage_path"]))
        assert meta["url"] == f"/api/v1/files/{meta['storage_path']}"

        listed = attachment_service.list_attachments(tenant.id, pid)
        assert [a["id"] for a in listed] == [meta["id"]]
        assert listed[0]["url"] == f"/api/v1/files/{meta['storage_path']}"
        assert attachment_service.list_attachments(tenant.id, pid, phase=2) == []

        downloaded, data = attachment_service.download(tenant.id, pid, meta["id"])
        assert downloaded["id"] == meta["id"]
        assert data == b"cells"

        attachment_service.delete(tenant.id, pid, meta["id"])
        assert attachment_service.list_attachments(tenant.id, pid) == []
        assert not os.path.exists(os.path.join(storage.root, meta["storage_path"]))

    def test_empty_file_rejected(self, tenant, project, storage):
        with pytest.raises(ValidationError, match="empty"):
            attachment_service.upload(tenant.id, project["id"], "a.txt", b"")

    def test_oversized_file_rejected(self, tenant, project, storage, monkeypatch):
        monkeypatch.setattr(attachment_service, "MAX_ATTACHMENT_BYTES", 4)
        with pytest.raises(ValidationError, match="exceeds"):
            attachment_service.upload(tenant.id, project["id"], "a.txt", b"12345")
        assert not os.path.exists(storage.root)

    def test_bad_phase_rejected(self, tenant, project, storage):
        with pytest.raises(ValidationError, match="phase_number"):
            attachment_service.upload(tenant.id, project["id"], "a.txt", b"x", phase=9)

    def test_other_tenant_cannot_download(self, tenant, other_tenant, project, storage):
        meta = attachment_service.upload(tenant.id, project["id"], "a.txt", b"x")
        with pytest.raises(NotFoundError):
            attachment_service.download(other_tenant.id, project["id"], meta["id"])


class TestObjectStorage:
    @pytest.mark.parametrize("raw, expected", [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\memo final.docx", "memo_final.docx"),
        ("...", "file"),
        ("", "file"),
    ])
    def test_safe_file_name(self, raw, expected):
        assert safe_file_name(raw) == expected

    def test_storage_key_layout(self):
        assert build_storage_key(3, 12, "memo.txt", timestamp_ms=1700000000000) == \
            "3/12/1700000000000_memo.txt"

    def test_key_escaping_root_refused(self, storage):
        with pytest.raises(StorageError, match="escapes"):
            storage.put("../outside.txt", b"x")

    def test_missing_object(self, storage):
        with pytest.raises(StorageError, match="not found"):
            storage.get("1/1/missing.txt")

    def test_delete_missing_is_noop(self, storage):
        storage.delete("1/1/missing.txt")
