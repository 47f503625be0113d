"""Staging filesystem clients: local directories and MinIO buckets.

Both expose the same small surface the loader needs: create a write handle
on a path, check existence, delete, resolve an absolute URI the database
broker can read, and release the client.
"""

from __future__ import annotations

import contextlib
import logging
import os
import posixpath
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol
from urllib.parse import urlparse

import urllib3
from minio import Minio
from minio.error import MinioException, S3Error

from brokerload.errors import StagingIOError
from brokerload.settings import MinioConfig

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _io_errors(action: str, path: str) -> Iterator[None]:
    try:
        yield
    except StagingIOError:
        raise
    except (OSError, MinioException, urllib3.exceptions.HTTPError) as e:
        raise StagingIOError(f"Failed to {action} {path}: {e}") from e


def staging_path(data_dir: str, label: str) -> str:
    return posixpath.join(data_dir, label)


class StagingHandle(Protocol):
    def write(self, data: bytes) -> None: ...

    def flush(self) -> None: ...

    def sync(self) -> None: ...

    def close(self) -> None: ...


class StagingFileSystem(Protocol):
    def create(self, path: str) -> StagingHandle: ...

    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> bool: ...

    def uri(self, path: str) -> str: ...

    def close(self) -> None: ...


class LocalFileHandle:
    """Write handle on a local file; ``sync`` forces the bytes to disk."""

    def __init__(self, path: str) -> None:
        self.path = path
        with _io_errors("create", path):
            self._file: BinaryIO = open(path, "wb")

    def write(self, data: bytes) -> None:
        with _io_errors("write", self.path):
            self._file.write(data)

    def flush(self) -> None:
        with _io_errors("flush", self.path):
            self._file.flush()

    def sync(self) -> None:
        with _io_errors("sync", self.path):
            os.fsync(self._file.fileno())

    def close(self) -> None:
        with _io_errors("close", self.path):
            self._file.close()


class LocalFileSystem:
    """Staging on a local (or locally mounted shared) filesystem."""

    def create(self, path: str) -> LocalFileHandle:
        with _io_errors("create", path):
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        return LocalFileHandle(path)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def delete(self, path: str) -> bool:
        with _io_errors("delete", path):
            try:
                os.remove(path)
            except FileNotFoundError:
                return False
        return True

    def uri(self, path: str) -> str:
        return Path(path).resolve().as_uri()

    def close(self) -> None:
        logger.debug("Local staging filesystem released")


class MinioFileHandle:
    """Write handle on a MinIO object.

    Object stores have no append stream, so bytes are spooled into a local
    temporary file; ``sync`` uploads it, after which readers see the object.
    """

    def __init__(self, client: Minio, bucket: str, object_name: str) -> None:
        self._client = client
        self._bucket = bucket
        self._object_name = object_name
        self.path = f"s3://{bucket}/{object_name}"
        with _io_errors("create", self.path):
            self._spool = tempfile.NamedTemporaryFile(prefix="brokerload-", delete=False)

    def write(self, data: bytes) -> None:
        with _io_errors("write", self.path):
            self._spool.write(data)

    def flush(self) -> None:
        with _io_errors("flush", self.path):
            self._spool.flush()

    def sync(self) -> None:
        with _io_errors("sync", self.path):
            os.fsync(self._spool.fileno())
            self._client.fput_object(self._bucket, self._object_name, self._spool.name)
        logger.info("Uploaded staging object %s", self.path)

    def close(self) -> None:
        with _io_errors("close", self.path):
            try:
                self._spool.close()
            finally:
                os.unlink(self._spool.name)


class MinioFileSystem:
    """Staging in a MinIO (S3 compatible) bucket."""

    def __init__(self, config: MinioConfig) -> None:
        parsed = urlparse(config.endpoint)
        host_port = parsed.netloc or parsed.path
        self._http = urllib3.PoolManager()
        self._client = Minio(
            host_port,
            access_key=config.access_key,
            secret_key=config.secret_key,
            secure=config.secure,
            http_client=self._http,
        )
        self._bucket = config.bucket_staging

    @staticmethod
    def _object_name(path: str) -> str:
        return path.lstrip("/")

    def ensure_bucket(self) -> None:
        with _io_errors("create bucket", self._bucket):
            if not self._client.bucket_exists(self._bucket):
                self._client.make_bucket(self._bucket)
                logger.info("Created bucket: %s", self._bucket)

    def create(self, path: str) -> MinioFileHandle:
        self.ensure_bucket()
        return MinioFileHandle(self._client, self._bucket, self._object_name(path))

    def exists(self, path: str) -> bool:
        object_name = self._object_name(path)
        with _io_errors("stat", f"s3://{self._bucket}/{object_name}"):
            try:
                self._client.stat_object(self._bucket, object_name)
            except S3Error as e:
                if e.code in ("NoSuchKey", "NoSuchBucket", "NoSuchObject"):
                    return False
                raise
        return True

    def delete(self, path: str) -> bool:
        object_name = self._object_name(path)
        with _io_errors("delete", f"s3://{self._bucket}/{object_name}"):
            self._client.remove_object(self._bucket, object_name)
        return True

    def uri(self, path: str) -> str:
        return f"s3a://{self._bucket}/{self._object_name(path)}"

    def close(self) -> None:
        with _io_errors("release client for", self._bucket):
            self._http.clear()


def create_filesystem(kind: str, minio: MinioConfig) -> StagingFileSystem:
    if kind == "local":
        return LocalFileSystem()
    if kind == "minio":
        return MinioFileSystem(minio)
    raise ValueError(f"Unknown staging filesystem: {kind!r}. Valid: ['local', 'minio']")
