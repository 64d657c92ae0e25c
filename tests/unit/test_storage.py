"""Unit tests for the BlobStore core module."""

import os

import pytest
from unittest.mock import patch

from strongbox.core.exceptions import InvalidPathError, StorageError
from strongbox.core.storage import BLOB_SUFFIX, BlobStore


@pytest.fixture
def blobs(tmp_path):
    """Return a BlobStore rooted in tmp_path."""
    return BlobStore(tmp_path / "blobs")


def test_new_name_layout(blobs):
    name = blobs.new_name("col-1")
    assert name.startswith("col-1/")
    assert name.endswith(BLOB_SUFFIX)
    assert blobs.new_name("col-1") != name


def test_write_read_delete(blobs):
    name = blobs.new_name("col-1")
    assert blobs.write(name, b"\x00envelope") == 9
    assert blobs.exists(name)
    assert blobs.read(name) == b"\x00envelope"
    assert blobs.list_names() == [name]
    assert blobs.delete(name) is True
    assert not blobs.exists(name)
    assert blobs.delete(name) is False


def test_write_replaces_atomically(blobs):
    name = blobs.new_name("c")
    blobs.write(name, b"one")
    blobs.write(name, b"two")
    assert blobs.read(name) == b"two"
    leftovers = [p for p in (blobs.root / "c").iterdir() if p.name.startswith(".tmp-")]
    assert leftovers == []


def test_failed_write_leaves_no_temp_file(blobs):
    name = blobs.new_name("c")
    with patch("strongbox.core.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(StorageError):
            blobs.write(name, b"data")
    assert not blobs.exists(name)
    assert os.listdir(blobs.root / "c") == []


def test_read_missing_is_storage_error(blobs):
    with pytest.raises(StorageError):
        blobs.read("c/missing.enc")


@pytest.mark.parametrize(
    "name",
    ["", "../escape.enc", "c/../../escape.enc", "/etc/passwd", "c\\x.enc", "./c/x.enc", "c/\x00.enc"],
)
def test_path_traversal_rejected(blobs, name):
    with pytest.raises(InvalidPathError):
        blobs.path_for(name)


def test_invalid_path_is_a_storage_error():
    assert issubclass(InvalidPathError, StorageError)


def test_delete_collection_removes_directory(blobs):
    a = blobs.new_name("c1")
    b = blobs.new_name("c2")
    blobs.write(a, b"a")
    blobs.write(b, b"b")
    blobs.delete_collection("c1")
    assert not blobs.exists(a)
    assert blobs.exists(b)
    blobs.delete_collection("c1")
