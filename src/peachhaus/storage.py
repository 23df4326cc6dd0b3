"""Local file storage with signed, expiring download URLs."""

from __future__ import annotations

import mimetypes
from pathlib import Path, PurePosixPath

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from peachhaus.config import get_settings
from peachhaus.errors import PeachHausError


class StorageError(PeachHausError):
    status_code = 404


def _serializer(settings=None) -> URLSafeTimedSerializer:
    settings = settings or get_settings()
    return URLSafeTimedSerializer(settings.storage_secret, salt="peachhaus-storage")


def _resolve(bucket: str, key: str, settings=None) -> Path:
    settings = settings or get_settings()
    rel = PurePosixPath(bucket) / PurePosixPath(key)
    if rel.is_absolute() or ".." in rel.parts:
        raise StorageError(f"Invalid storage path: {bucket}/{key}")
    return settings.storage_path / Path(*rel.parts)


def upload(bucket: str, key: str, data: bytes, upsert: bool = True) -> str:
    """Write ``data`` under ``bucket/key`` and return the storage path."""
    path = _resolve(bucket, key)
    if path.exists() and not upsert:
        raise StorageError(f"Object already exists: {bucket}/{key}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return f"{bucket}/{key}"


def download(bucket: str, key: str) -> bytes:
    path = _resolve(bucket, key)
    if not path.exists():
        raise StorageError(f"Object not found: {bucket}/{key}")
    return path.read_bytes()


def local_path(bucket: str, key: str) -> Path:
    return _resolve(bucket, key)


def signed_url(bucket: str, key: str) -> str:
    """Return a URL that serves ``bucket/key`` until the configured TTL lapses."""
    settings = get_settings()
    token = _serializer(settings).dumps({"b": bucket, "k": key})
    base = settings.functions_url.rstrip("/").rsplit("/functions", 1)[0]
    return f"{base}/storage/{token}"


def resolve_signed(token: str, max_age: int | None = None) -> tuple[str, str]:
    """Validate a signed token and return ``(bucket, key)``."""
    settings = get_settings()
    ttl = settings.signed_url_ttl_seconds if max_age is None else max_age
    try:
        payload = _serializer(settings).loads(token, max_age=ttl)
    except SignatureExpired as e:
        raise StorageError("Signed URL expired") from e
    except BadSignature as e:
        raise StorageError("Invalid signed URL") from e
    return payload["b"], payload["k"]


def content_type(key: str) -> str:
    return mimetypes.guess_type(key)[0] or "application/octet-stream"
