"""
Pytest configuration and shared fixtures for all tests
"""
import io
import sys
from pathlib import Path

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

# Add src to Python path for imports
SRC = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC))

from uploads_api.main import app, get_storage  # noqa: E402
from uploads_api.storage import LocalStorage  # noqa: E402


class FakeS3:
    """In-memory stand-in for a boto3 S3 client"""

    def __init__(self):
        self.store = {}

    def _missing(self, op):
        return ClientError({"Error": {"Code": "NoSuchKey", "Message": "Not Found"}}, op)

    def upload_fileobj(self, fileobj, Bucket, Key, ExtraArgs=None):
        data = fileobj.read()
        if isinstance(data, str):
            data = data.encode()
        self.store[Key] = data

    def get_object(self, Bucket, Key):
        if Key not in self.store:
            raise self._missing("GetObject")
        return {"Body": io.BytesIO(self.store[Key])}

    def head_object(self, Bucket, Key):
        if Key not in self.store:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.store[Key])}

    def copy_object(self, Bucket, Key, CopySource):
        src = CopySource["Key"]
        if src not in self.store:
            raise self._missing("CopyObject")
        self.store[Key] = self.store[src]

    def delete_object(self, Bucket, Key):
        self.store.pop(Key, None)

    def delete_objects(self, Bucket, Delete):
        for obj in Delete["Objects"]:
            self.store.pop(obj["Key"], None)

    def get_paginator(self, name):
        class Paginator:
            def __init__(self, store):
                self.store = store

            def paginate(self, Bucket, Prefix, Delimiter=None):
                contents = []
                prefixes = set()
                for key in sorted(self.store):
                    if not key.startswith(Prefix):
                        continue
                    rest = key[len(Prefix):]
                    if Delimiter and Delimiter in rest:
                        prefixes.add(Prefix + rest.split(Delimiter, 1)[0] + Delimiter)
                    else:
                        contents.append({"Key": key})
                page = {}
                if contents:
                    page["Contents"] = contents
                if prefixes:
                    page["CommonPrefixes"] = [{"Prefix": p} for p in sorted(prefixes)]
                yield page

        return Paginator(self.store)


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def upload_dir(tmp_path):
    """Storage directory for the local backend"""
    return tmp_path / "uploads"


@pytest.fixture
def storage(upload_dir):
    return LocalStorage(str(upload_dir))


@pytest.fixture
def make_client():
    """Build a TestClient whose requests use the given storage backend"""
    def _make(backend):
        app.dependency_overrides[get_storage] = lambda: backend
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, storage):
    return make_client(storage)
