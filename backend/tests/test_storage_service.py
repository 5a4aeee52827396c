import os
import time
from datetime import timedelta

import pytest

from printdesk.errors import StorageError
from printdesk.services.storage_service import (
    TRASH_DIR,
    BlobNotFound,
    BlobStore,
    InvalidBlobKey,
    sanitize_name,
)


@pytest.fixture
def store(tmp_path):
    return BlobStore(tmp_path / "blobs")


def _age(store, key, hours):
    ts = time.time() - hours * 3600
    os.utime(store.root / key, (ts, ts))


class TestKeys:
    def test_key_is_millis_and_sanitized_name(self, store):
        blob = store.put(b"abc", "my report (final).pdf")
        millis, name = blob.key.split("-", 1)
        assert millis.isdigit()
        assert name == "my_report__final_.pdf"

    def test_client_path_is_dropped(self):
        assert sanitize_name("../../etc/passwd") == "passwd"
        assert sanitize_name("C:\\Users\\me\\cv.docx") == "cv.docx"
        assert sanitize_name("...") == "file"

    def test_same_name_same_millisecond_does_not_clobber(self, store):
        first = store.put(b"one", "a.pdf")
        second = store.put(b"two", "a.pdf")
        assert first.key != second.key
        assert store.read(first.key) == b"one"
        assert store.read(second.key) == b"two"

    @pytest.mark.parametrize("key", ["../x.pdf", "a/b.pdf", "a\\b.pdf", ".hidden", "a\x00b", ".."])
    def test_traversal_keys_rejected(self, store, key):
        with pytest.raises(InvalidBlobKey):
            store.read(key)


class TestReadWrite:
    def test_put_read_metadata(self, store):
        blob = store.put(b"hello", "x.pdf")
        assert blob.size == 5
        assert store.exists(blob.key)
        assert store.metadata(blob.key).size == 5
        assert store.path_for(blob.key).read_bytes() == b"hello"

    def test_no_temp_files_left(self, store):
        store.put(b"hello", "x.pdf")
        assert [p.name for p in store.root.iterdir() if p.name.startswith(".tmp-")] == []

    def test_missing_blob(self, store):
        store.ensure_root()
        with pytest.raises(BlobNotFound):
            store.read("123-missing.pdf")
        assert store.metadata("123-missing.pdf") is None
        assert store.delete("123-missing.pdf") is False

    def test_list_newest_first(self, store):
        old = store.put(b"1", "old.pdf")
        new = store.put(b"2", "new.pdf")
        _age(store, old.key, 2)
        assert [m.key for m in store.list()] == [new.key, old.key]
        assert store.list()[0].to_dict()["sizeInMB"] == "0.00"

    def test_put_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        with pytest.raises(StorageError):
            BlobStore(blocker).put(b"x", "x.pdf")


class TestStagedDelete:
    def test_commit_purges(self, store):
        blob = store.put(b"x", "x.pdf")
        staged = store.stage_delete(blob.key)
        assert staged.found
        assert not store.exists(blob.key)
        staged.commit()
        assert list((store.root / TRASH_DIR).iterdir()) == []

    def test_restore_puts_blob_back(self, store):
        blob = store.put(b"x", "x.pdf")
        staged = store.stage_delete(blob.key)
        staged.restore()
        assert store.read(blob.key) == b"x"

    def test_already_gone(self, store):
        store.ensure_root()
        staged = store.stage_delete("1-gone.pdf")
        assert not staged.found
        staged.commit()
        staged.restore()


class TestRetentionSweep:
    def test_sweep_keeps_23h_deletes_25h(self, store):
        keep = store.put(b"k", "keep.pdf")
        drop = store.put(b"d", "drop.pdf")
        _age(store, keep.key, 23)
        _age(store, drop.key, 25)

        assert store.sweep_expired(timedelta(hours=24)) == 1
        assert store.exists(keep.key)
        assert not store.exists(drop.key)

    def test_sweep_is_idempotent(self, store):
        drop = store.put(b"d", "drop.pdf")
        _age(store, drop.key, 30)
        assert store.sweep_expired(timedelta(hours=24)) == 1
        assert store.sweep_expired(timedelta(hours=24)) == 0

    def test_sweep_on_missing_root(self, tmp_path):
        assert BlobStore(tmp_path / "nowhere").sweep_expired(timedelta(hours=1)) == 0
