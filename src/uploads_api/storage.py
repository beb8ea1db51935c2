"""
Storage backends for uploaded files.

Both backends expose the same flat namespace of file names:
put / open / exists / rename / delete / list.
LocalStorage keeps files in one directory, S3Storage keeps them as objects
under a bucket prefix.
"""
import os
import shutil
from pathlib import Path
from typing import BinaryIO, List, Optional

import boto3
from botocore.exceptions import ClientError

from . import config

CHUNK_SIZE = 1024 * 1024  # 1 MiB


def check_name(name: str) -> str:
    """Reject names that would leave the flat storage namespace."""
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise ValueError(f"Invalid file name: {name!r}")
    return name


def check_entry(name: str) -> str:
    """Looser check for names taken from a listing; they may hold any character but /."""
    if not name or name in (".", "..") or "/" in name or "\x00" in name:
        raise ValueError(f"Invalid entry name: {name!r}")
    return name


class LocalStorage:
    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.root / check_name(name)

    def put(self, name: str, fileobj: BinaryIO) -> None:
        with self._path(name).open("wb") as out:
            shutil.copyfileobj(fileobj, out, CHUNK_SIZE)

    def open(self, name: str) -> BinaryIO:
        p = self._path(name)
        if not p.is_file():
            raise FileNotFoundError(name)
        return p.open("rb")

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def rename(self, src: str, dst: str) -> None:
        # Overwrites dst if it already exists
        os.replace(self._path(src), self._path(dst))

    def delete(self, name: str) -> None:
        p = self.root / check_entry(name)
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
        else:
            p.unlink()

    def list(self) -> List[str]:
        return sorted(os.listdir(self.root))


class S3Storage:
    """Objects live under ``<prefix><name>``; nested keys are listed as ``<dir>/``."""

    def __init__(self, bucket: str, prefix: str = "", region: str = "us-east-1", client=None):
        self.bucket = bucket
        self.prefix = prefix
        self.client = client or boto3.client("s3", region_name=region)

    def _key(self, name: str) -> str:
        return f"{self.prefix}{check_name(name)}"

    def put(self, name: str, fileobj: BinaryIO) -> None:
        self.client.upload_fileobj(fileobj, self.bucket, self._key(name))

    def open(self, name: str) -> BinaryIO:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=self._key(name))
        except ClientError as e:
            if _is_missing(e):
                raise FileNotFoundError(name) from e
            raise
        return resp["Body"]

    def exists(self, name: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(name))
        except ClientError as e:
            if _is_missing(e):
                return False
            raise
        return True

    def rename(self, src: str, dst: str) -> None:
        src_key = self._key(src)
        self.client.copy_object(
            Bucket=self.bucket,
            Key=self._key(dst),
            CopySource={"Bucket": self.bucket, "Key": src_key},
        )
        self.client.delete_object(Bucket=self.bucket, Key=src_key)

    def delete(self, name: str) -> None:
        if name.endswith("/"):
            self._delete_prefix(self.prefix + check_entry(name[:-1]) + "/")
            return
        self.client.delete_object(Bucket=self.bucket, Key=self.prefix + check_entry(name))

    def _delete_prefix(self, prefix: str) -> None:
        paginator = self.client.get_paginator("list_objects_v2")
        delete_keys = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                delete_keys.append({"Key": obj["Key"]})
        for i in range(0, len(delete_keys), 1000):
            chunk = delete_keys[i: i + 1000]
            self.client.delete_objects(Bucket=self.bucket, Delete={"Objects": chunk})

    def list(self) -> List[str]:
        names = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix, Delimiter="/"):
            for obj in page.get("Contents", []):
                names.append(obj["Key"][len(self.prefix):])
            for sub in page.get("CommonPrefixes", []):
                names.append(sub["Prefix"][len(self.prefix):])
        return sorted(n for n in names if n)


def _is_missing(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in ("404", "NoSuchKey", "NotFound")


def storage_from_config(backend: Optional[str] = None):
    """Build the storage backend selected by STORAGE_BACKEND."""
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "local":
        return LocalStorage(config.UPLOAD_DIR)
    if backend == "s3":
        return S3Storage(config.S3_BUCKET, prefix=config.S3_PREFIX, region=config.AWS_REGION)
    raise ValueError(f"Unknown storage backend: {backend}")
