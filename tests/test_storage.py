"""Local storage and signed download URLs."""
import pytest

from peachhaus import storage
from peachhaus.storage import StorageError


def test_upload_download_roundtrip():
    path = storage.upload("message-attachments", "voicemails/a.mp3", b"ID3audio")
    assert path == "message-attachments/voicemails/a.mp3"
    assert storage.download("message-attachments", "voicemails/a.mp3") == b"ID3audio"


def test_upload_without_upsert_refuses_overwrite():
    storage.upload("b", "k.txt", b"1")
    with pytest.raises(StorageError):
        storage.upload("b", "k.txt", b"2", upsert=False)


def test_path_traversal_rejected():
    with pytest.raises(StorageError):
        storage.upload("b", "../../etc/passwd", b"x")


def test_signed_url_resolves_and_expires():
    storage.upload("signed-documents", "doc.pdf", b"%PDF-1.7")
    url = storage.signed_url("signed-documents", "doc.pdf")
    assert url.startswith("http://localhost:5055/storage/")
    token = url.rsplit("/", 1)[1]

    assert storage.resolve_signed(token) == ("signed-documents", "doc.pdf")
    with pytest.raises(StorageError, match="expired"):
        storage.resolve_signed(token, max_age=-1)
    with pytest.raises(StorageError, match="Invalid"):
        storage.resolve_signed(token + "x")


def test_signed_url_served_by_app(client):
    storage.upload("signed-documents", "doc.pdf", b"%PDF-1.7 test")
    token = storage.signed_url("signed-documents", "doc.pdf").rsplit("/", 1)[1]
    resp = client.get(f"/storage/{token}")
    assert resp.status_code == 200
    assert resp.data == b"%PDF-1.7 test"
    assert resp.mimetype == "application/pdf"

    resp = client.get("/storage/not-a-token")
    assert resp.status_code == 404
