# services/storage.py
"""Supabase Storage client: the only place that talks to the bucket."""
import logging
import posixpath
from typing import Iterable, Optional
from urllib.parse import quote

import requests
from fastapi import Request

from config import ConfigError, Settings
from services.transcode import ResultFile

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
LIST_PAGE_SIZE = 1000


class StorageError(Exception):
    """Upstream failure unrelated to the object's existence."""


class ObjectNotFound(StorageError):
    pass


class BucketClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket.strip().strip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._session = session or requests.Session()

    def __repr__(self) -> str:
        return f"BucketClient(base_url={self.base_url!r}, bucket={self.bucket!r})"

    # ---------- helpers ----------
    def _headers(self, content_type: Optional[str] = None) -> dict:
        headers = {"Authorization": f"Bearer {self._api_key}", "apikey": self._api_key}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _url(self, *parts: str) -> str:
        return "/".join([f"{self.base_url}/storage/v1"] + [p.strip("/") for p in parts if p.strip("/")])

    @staticmethod
    def _object_path(object_path: str) -> str:
        trimmed = (object_path or "").lstrip("/")
        if not trimmed:
            raise StorageError("empty object path")
        return quote(trimmed, safe="/")

    def _request(self, method: str, url: str, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        try:
            resp = self._session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StorageError(f"storage request failed: {type(e).__name__}") from e
        if resp.status_code < 300:
            return resp
        body = (resp.text or "")[:1024]
        if resp.status_code == 404 or (resp.status_code == 400 and "not found" in body.lower()):
            raise ObjectNotFound("object not found")
        logger.warning("Storage %s %s -> %s", method, url.split("?", 1)[0], resp.status_code)
        raise StorageError(f"storage responded {resp.status_code}")

    # ---------- reads ----------
    def download(self, object_path: str, timeout: Optional[float] = None) -> bytes:
        url = self._url("object", self.bucket, self._object_path(object_path))
        return self._request("GET", url, timeout=timeout, headers=self._headers()).content

    def signed_url(self, object_path: str, expires_in: int, timeout: Optional[float] = None) -> str:
        """Short-lived direct download URL for one object."""
        url = self._url("object", "sign", self.bucket, self._object_path(object_path))
        resp = self._request(
            "POST", url, timeout=timeout, headers=self._headers("application/json"), json={"expiresIn": int(expires_in)}
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise StorageError("storage returned an unreadable sign response") from e
        signed = (data.get("signedURL") or data.get("signedUrl")) if isinstance(data, dict) else None
        if not signed:
            raise StorageError("storage returned no signed url")
        if signed.startswith(("http://", "https://")):
            return signed
        return f"{self.base_url}/storage/v1/{signed.lstrip('/')}"

    def list_objects(self, prefix: str) -> list[str]:
        url = self._url("object", "list", self.bucket)
        names: list[str] = []
        offset = 0
        while True:
            payload = {"prefix": prefix, "limit": LIST_PAGE_SIZE, "offset": offset}
            items = self._request("POST", url, headers=self._headers("application/json"), json=payload).json() or []
            for item in items:
                name = item.get("name")
                if name:
                    names.append(posixpath.join(prefix, name))
            if len(items) < LIST_PAGE_SIZE:
                return names
            offset += LIST_PAGE_SIZE

    # ---------- writes ----------
    def upload_bytes(self, object_path: str, data: bytes, content_type: str) -> None:
        url = self._url("object", self.bucket, self._object_path(object_path))
        headers = self._headers(content_type)
        headers["x-upsert"] = "true"
        self._request("POST", url, headers=headers, data=data)

    def upload_batch(self, prefix: str, files: Iterable[ResultFile]) -> None:
        clean_prefix = prefix.strip("/")
        for f in files:
            path = posixpath.join(clean_prefix, f.name) if clean_prefix else f.name
            self.upload_bytes(path, f.content, f.content_type)
        logger.info("Uploaded assets under %s/", clean_prefix)

    def delete_prefix(self, prefix: str) -> None:
        clean = prefix.strip().strip("/")
        if not clean:
            raise StorageError("cannot delete empty prefix")
        names = self.list_objects(clean)
        if not names:
            return
        url = self._url("object", self.bucket)
        self._request("DELETE", url, headers=self._headers("application/json"), json={"prefixes": names})
        logger.info("Deleted %d objects under %s/", len(names), clean)


def bucket_client_from_settings(settings: Settings) -> BucketClient:
    if not (settings.supabase_url and settings.supabase_service_key and settings.bucket_name):
        raise ConfigError("supabase bucket env vars missing")
    return BucketClient(settings.supabase_url, settings.supabase_service_key, settings.bucket_name)


def get_storage(request: Request) -> BucketClient:
    return request.app.state.storage
