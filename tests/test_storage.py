"""
Tests for storage backends
"""
import io
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError
from botocore.stub import Stubber

from scriptpatch.errors import ObjectNotFound, StorageError
from scriptpatch.packaging.publish_config import PublishConfig
from scriptpatch.packaging.storage import (
    S3Storage, LocalStorage, MemoryStorage, join_key,
)


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


def _real_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        endpoint_url="http://localhost:9000",
        aws_access_key_id="admin",
        aws_secret_access_key="adminadmin",
    )


class TestJoinKey:
    def test_join(self):
        assert join_key("a/", "/b", "c") == "a/b/c"
        assert join_key("", "x") == "x"
        assert join_key("a\\b", "c") == "a/b/c"


class TestS3Storage:
    """测试 S3 后端（模拟 boto3 客户端）"""

    def test_get(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"data")}
        storage = S3Storage("bucket", client=client)

        assert storage.get("k/Manifest.db") == b"data"
        client.get_object.assert_called_once_with(Bucket="bucket", Key="k/Manifest.db")

    def test_get_not_found(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("NoSuchKey")
        storage = S3Storage("bucket", client=client)

        with pytest.raises(ObjectNotFound) as exc:
            storage.get("k")
        assert exc.value.key == "k"

    def test_get_other_error(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied")
        storage = S3Storage("bucket", client=client)

        with pytest.raises(StorageError) as exc:
            storage.get("k")
        assert not isinstance(exc.value, ObjectNotFound)

    def test_get_transport_error(self):
        client = MagicMock()
        client.get_object.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")
        storage = S3Storage("bucket", client=client)

        with pytest.raises(StorageError):
            storage.get("k")

    def test_put(self, tmp_path):
        client = MagicMock()
        storage = S3Storage("bucket", client=client)
        src = tmp_path / "a.jsc@abc"
        src.write_bytes(b"x")

        storage.put(src, "prefix/a.jsc@abc")

        kwargs = client.upload_file.call_args.kwargs
        assert kwargs["Filename"] == str(src)
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["Key"] == "prefix/a.jsc@abc"

    def test_put_error(self, tmp_path):
        """upload_file 把服务端错误包装为 S3UploadFailedError"""
        client = MagicMock()
        client.upload_file.side_effect = S3UploadFailedError("Failed to upload a to bucket/k: InternalError")
        storage = S3Storage("bucket", client=client)

        with pytest.raises(StorageError) as exc:
            storage.put(tmp_path / "a", "k")
        assert exc.value.key == "k"

    def test_put_server_error_real_client(self, tmp_path):
        """真实客户端上传失败时抛出 StorageError"""
        client = _real_client()
        storage = S3Storage("bucket", client=client)
        src = tmp_path / "a.jsc@abc"
        src.write_bytes(b"payload")

        with Stubber(client) as stubber:
            stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)
            with pytest.raises(StorageError) as exc:
                storage.put(src, "prefix/a.jsc@abc")

        assert exc.value.key == "prefix/a.jsc@abc"
        assert exc.value.path == str(src)
        assert isinstance(exc.value.__cause__, S3UploadFailedError)

    def test_exists(self):
        client = MagicMock()
        storage = S3Storage("bucket", client=client)
        assert storage.exists("k")

        client.head_object.side_effect = _client_error("404", "HeadObject")
        assert not storage.exists("k")

    def test_from_config(self):
        config = PublishConfig(endpoint="http://localhost:9000", bucket="default",
                               access_key="admin", secret_key="adminadmin")
        with patch("scriptpatch.packaging.storage.boto3.client") as make_client:
            storage = S3Storage.from_config(config)

        assert storage.bucket == "default"
        kwargs = make_client.call_args.kwargs
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["aws_access_key_id"] == "admin"
        assert kwargs["aws_secret_access_key"] == "adminadmin"


class TestLocalStorage:
    """测试目录后端"""

    def test_put_get(self, tmp_path):
        storage = LocalStorage(tmp_path / "store", bucket="default")
        src = tmp_path / "src.bin"
        src.write_bytes(b"payload")

        storage.put(src, "a/b/src.bin@123")

        assert (tmp_path / "store" / "default" / "a" / "b" / "src.bin@123").read_bytes() == b"payload"
        assert storage.get("a/b/src.bin@123") == b"payload"
        assert storage.exists("a/b/src.bin@123")

    def test_get_missing(self, tmp_path):
        storage = LocalStorage(tmp_path)
        with pytest.raises(ObjectNotFound):
            storage.get("nothing")
        assert not storage.exists("nothing")

    def test_put_missing_source(self, tmp_path):
        storage = LocalStorage(tmp_path / "store")
        with pytest.raises(StorageError):
            storage.put(tmp_path / "missing", "k")


class TestMemoryStorage:
    """测试内存后端"""

    def test_put_records_order(self, tmp_path):
        storage = MemoryStorage()
        for name in ("b", "a"):
            p = tmp_path / name
            p.write_bytes(name.encode())
            storage.put(p, name)
        assert storage.uploads == ["b", "a"]
        assert storage.get("a") == b"a"

    def test_injected_failure(self, tmp_path):
        storage = MemoryStorage(fail_on=lambda key: key.endswith("bad"))
        p = tmp_path / "f"
        p.write_bytes(b"x")
        with pytest.raises(StorageError):
            storage.put(p, "x/bad")
        assert storage.objects == {}
