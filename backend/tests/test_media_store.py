from __future__ import annotations

import base64

import pytest

from veostudio.errors import MediaStorageError
from veostudio.media_store import MediaStore, split_data_url


@pytest.fixture
def store(tmp_path) -> MediaStore:
    return MediaStore(tmp_path / "generated-images", "/generated-images")


def test_save_then_load_is_byte_identical(store: MediaStore):
    payload = bytes(range(256))
    url = store.save("img-1", base64.b64encode(payload).decode("ascii"))

    assert url == "/generated-images/img-1.png"
    assert store.read_bytes("img-1") == payload
    data_url = store.load("img-1")
    assert data_url.startswith("data:image/png;base64,")
    assert base64.b64decode(data_url.split(",", 1)[1]) == payload


def test_save_strips_data_url_prefix(store: MediaStore):
    encoded = base64.b64encode(b"hello").decode("ascii")
    store.save("img-2", f"data:image/jpeg;base64,{encoded}")

    assert store.read_bytes("img-2") == b"hello"


def test_split_data_url_returns_mime_type():
    assert split_data_url("data:image/webp;base64,QUJD") == ("QUJD", "image/webp")
    assert split_data_url("QUJD") == ("QUJD", None)


def test_invalid_base64_raises(store: MediaStore):
    with pytest.raises(MediaStorageError) as excinfo:
        store.save("img-3", "not base64 at all!")

    assert excinfo.value.code == "INVALID_MEDIA_PAYLOAD"


def test_delete_then_load_is_absent(store: MediaStore):
    store.save("img-4", b"raw-bytes")

    assert store.delete("img-4") is True
    assert store.load("img-4") is None
    assert store.delete("img-4") is False


def test_missing_file_is_not_an_error(store: MediaStore):
    assert store.read_bytes("never-saved") is None
    assert store.load("never-saved") is None


@pytest.mark.parametrize("media_id", ["../escape", "a/b", "", "name.png"])
def test_invalid_ids_are_rejected(store: MediaStore, media_id: str):
    with pytest.raises(MediaStorageError) as excinfo:
        store.save(media_id, b"x")

    assert excinfo.value.code == "INVALID_MEDIA_ID"


def test_clear_all_reports_ids_that_failed(store: MediaStore, monkeypatch: pytest.MonkeyPatch):
    store.save("keep-ok", b"1")
    store.save("locked", b"2")
    original_delete = store.delete

    def flaky_delete(media_id: str) -> bool:
        if media_id == "locked":
            raise MediaStorageError("permission denied")
        return original_delete(media_id)

    monkeypatch.setattr(store, "delete", flaky_delete)

    assert store.clear_all(["keep-ok", "locked", "missing"]) == ["locked"]
    assert store.exists("keep-ok") is False
    assert store.exists("locked") is True
