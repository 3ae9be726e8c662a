from __future__ import annotations

from collections.abc import Iterator
import io
from pathlib import Path
from typing import IO, Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from orderdata.config import StoreSettings


class ObjectStoreError(RuntimeError):
    pass


class ObjectStore(Protocol):
    bucket: str

    def iter_names(self, prefix: str) -> Iterator[str]: ...

    def open_read(self, name: str) -> IO[bytes]: ...

    def write(self, name: str, body: bytes, *, content_type: str) -> None: ...


def create_s3_client(settings: StoreSettings) -> Any:
    kwargs: dict[str, str] = {}
    if settings.region:
        kwargs["region_name"] = settings.region
    if settings.endpoint_url:
        kwargs["endpoint_url"] = settings.endpoint_url
    if settings.access_key_id and settings.secret_access_key:
        kwargs["aws_access_key_id"] = settings.access_key_id
        kwargs["aws_secret_access_key"] = settings.secret_access_key
    return boto3.client("s3", **kwargs)


class _S3RawStream(io.RawIOBase):
    def __init__(self, body: Any, *, location: str) -> None:
        super().__init__()
        self._body = body
        self._location = location

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        try:
            chunk = self._body.read(len(buffer))
        except BotoCoreError as exc:
            raise ObjectStoreError(f"could not read {self._location}: {exc}") from exc
        size = len(chunk)
        buffer[:size] = chunk
        return size

    def close(self) -> None:
        if not self.closed:
            self._body.close()
        super().close()


class S3ObjectStore:
    """Object store backed by any S3-compatible API (AWS S3, GCS interop, MinIO)."""

    def __init__(self, *, bucket: str, client: Any) -> None:
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> S3ObjectStore:
        return cls(bucket=settings.bucket, client=create_s3_client(settings))

    def iter_names(self, prefix: str) -> Iterator[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    key = item.get("Key")
                    # Folder placeholders created by console uploads.
                    if key and not key.endswith("/"):
                        yield key
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(
                f"could not list s3://{self.bucket}/{prefix}: {exc}"
            ) from exc

    def open_read(self, name: str) -> IO[bytes]:
        location = f"s3://{self.bucket}/{name}"
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=name)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"could not open {location}: {exc}") from exc
        return io.BufferedReader(_S3RawStream(response["Body"], location=location))

    def write(self, name: str, body: bytes, *, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=name,
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"could not write s3://{self.bucket}/{name}: {exc}") from exc


class LocalObjectStore:
    def __init__(self, *, root: Path, bucket: str) -> None:
        self.bucket = bucket
        self._bucket_dir = root / bucket

    def _path(self, name: str) -> Path:
        path = (self._bucket_dir / name).resolve()
        if not path.is_relative_to(self._bucket_dir.resolve()):
            raise ObjectStoreError(f"object name escapes bucket directory: {name!r}")
        return path

    def iter_names(self, prefix: str) -> Iterator[str]:
        if not self._bucket_dir.is_dir():
            raise ObjectStoreError(f"bucket directory not found: {self._bucket_dir}")

        for path in sorted(self._bucket_dir.rglob("*")):
            if not path.is_file():
                continue
            name = path.relative_to(self._bucket_dir).as_posix()
            if name.startswith(prefix):
                yield name

    def open_read(self, name: str) -> IO[bytes]:
        try:
            return self._path(name).open("rb")
        except OSError as exc:
            raise ObjectStoreError(f"could not open {self.bucket}/{name}: {exc}") from exc

    def write(self, name: str, body: bytes, *, content_type: str) -> None:
        del content_type
        path = self._path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as exc:
            raise ObjectStoreError(f"could not write {self.bucket}/{name}: {exc}") from exc
