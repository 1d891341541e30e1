"""Storage backends for published objects.

A backend is a key/value blob store bound to one bucket:
- get(key) -> bytes, raising ObjectNotFound / StorageError
- put(local_path, key)
- exists(key)

S3Storage talks to any S3 compatible service (MinIO, R2, AWS).
LocalStorage mirrors objects into a directory; MemoryStorage keeps them in a
dict and is used for dry runs and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ObjectNotFound, StorageError

if TYPE_CHECKING:
    from .publish_config import PublishConfig


_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def join_key(*parts: str) -> str:
    """Join key segments with single forward slashes."""
    segs: List[str] = []
    for p in parts:
        p = (p or "").replace("\\", "/").strip("/")
        if p:
            segs.append(p)
    return "/".join(segs)


class StorageBackend(ABC):
    """Abstract blob store bound to one bucket."""

    bucket: str = ""

    @abstractmethod
    def get(self, key: str) -> bytes:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def put(self, local_path: Path, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        try:
            self.get(key)
            return True
        except ObjectNotFound:
            return False


class S3Storage(StorageBackend):
    def __init__(
        self,
        bucket: str,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: str = "auto",
        client=None,
    ) -> None:
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint or None,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            region_name=region,
        )

    @classmethod
    def from_config(cls, config: "PublishConfig") -> "S3Storage":
        return cls(
            bucket=config.bucket,
            endpoint=config.endpoint,
            access_key=config.access_key,
            secret_key=config.secret_key,
            region=config.region,
        )

    def get(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFound("Object does not exist", key=key) from e
            raise StorageError(f"Get failed: {e}", key=key) from e
        except BotoCoreError as e:
            raise StorageError(f"Get failed: {e}", key=key) from e

    def put(self, local_path: Path, key: str) -> None:
        try:
            self.client.upload_file(
                Filename=str(local_path),
                Bucket=self.bucket,
                Key=key,
                ExtraArgs={"ContentType": "application/octet-stream"},
            )
        except (ClientError, BotoCoreError, Boto3Error) as e:
            raise StorageError(f"Put failed: {e}", path=str(local_path), key=key) from e
        except OSError as e:
            raise StorageError(f"Put failed: {e.strerror or e}", path=str(local_path), key=key) from e

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            raise StorageError(f"Head failed: {e}", key=key) from e
        except BotoCoreError as e:
            raise StorageError(f"Head failed: {e}", key=key) from e


class LocalStorage(StorageBackend):
    """Directory-backed store: <root>/<bucket>/<key>."""

    def __init__(self, root: Path, bucket: str = "default") -> None:
        self.root = Path(root)
        self.bucket = bucket

    def _path(self, key: str) -> Path:
        return self.root / self.bucket / join_key(key)

    def get(self, key: str) -> bytes:
        p = self._path(key)
        if not p.is_file():
            raise ObjectNotFound("Object does not exist", key=key)
        try:
            return p.read_bytes()
        except OSError as e:
            raise StorageError(f"Get failed: {e.strerror or e}", key=key) from e

    def put(self, local_path: Path, key: str) -> None:
        dst = self._path(key)
        tmp = dst.with_name(dst.name + ".part")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(Path(local_path).read_bytes())
            tmp.replace(dst)
        except OSError as e:
            raise StorageError(f"Put failed: {e.strerror or e}", path=str(local_path), key=key) from e


class MemoryStorage(StorageBackend):
    """In-memory store. `fail_on(key)` returning True makes that put fail."""

    def __init__(self, bucket: str = "memory", fail_on: Optional[Callable[[str], bool]] = None) -> None:
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.uploads: List[str] = []
        self.gets: List[str] = []
        self.fail_on = fail_on

    def get(self, key: str) -> bytes:
        self.gets.append(key)
        if key not in self.objects:
            raise ObjectNotFound("Object does not exist", key=key)
        return self.objects[key]

    def put(self, local_path: Path, key: str) -> None:
        if self.fail_on and self.fail_on(key):
            raise StorageError("Injected put failure", path=str(local_path), key=key)
        try:
            data = Path(local_path).read_bytes()
        except OSError as e:
            raise StorageError(f"Put failed: {e.strerror or e}", path=str(local_path), key=key) from e
        self.objects[key] = data
        self.uploads.append(key)


__all__ = [
    "join_key",
    "StorageBackend",
    "S3Storage",
    "LocalStorage",
    "MemoryStorage",
]
