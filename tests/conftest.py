# conftest.py
from unittest.mock import MagicMock

import pytest


class FakeBucket:
    """Stands in for google.cloud.storage.Bucket; keeps uploads in memory."""

    def __init__(self, name="analytics-test"):
        self.name = name
        self.objects = {}
        self.content_types = {}
        self.blobs = {}
        self.fail_on = set()
        self.errors = {}

    def _raise_for(self, key):
        if key in self.errors:
            raise self.errors[key]
        if key in self.fail_on:
            raise OSError(f"upload refused for {key}")

    def blob(self, key):
        blob = MagicMock(name=f"blob:{key}")

        def upload_from_file(file_obj, content_type=None, retry=None):
            self._raise_for(key)
            self.objects[key] = file_obj.read()
            self.content_types[key] = content_type

        def upload_from_string(data, content_type=None, retry=None):
            self._raise_for(key)
            self.objects[key] = data
            self.content_types[key] = content_type

        def delete():
            self.objects.pop(key, None)

        blob.upload_from_file.side_effect = upload_from_file
        blob.upload_from_string.side_effect = upload_from_string
        blob.delete.side_effect = delete
        self.blobs[key] = blob
        return blob


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def contact_records():
    return [
        {
            "id": 101,
            "first_name": "John",
            "email": "john@example.com",
            "phone": "+1-555-0100",
            "created_at": "2024-01-15T10:00:00Z",
            "address": {"city": "NYC", "state": "NY"},
            "tags": ["vip", "newsletter"],
        },
        {
            "id": 102,
            "first_name": "Jane",
            "email": "jane@example.com",
            "created_at": "2024-02-01T08:30:00Z",
            "address": {"city": "LA"},
            "tags": [],
        },
    ]
