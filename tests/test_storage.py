import pytest

from app.sitehost.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_storage_roundtrip(tmp_path):
    st = LocalStorage(root=tmp_path)
    st.put_bytes("profiles/a.png", b"img")
    assert st.exists("profiles/a.png")
    with st.open("profiles/a.png") as fh:
        assert fh.read() == b"img"
    st.delete("profiles/a.png")
    st.delete("profiles/a.png")
    assert not st.exists("profiles/a.png")


def test_local_storage_rejects_escaping_keys(tmp_path):
    st = LocalStorage(root=tmp_path / "uploads")
    with pytest.raises(StorageError):
        st.put_bytes("../outside.txt", b"x")


def test_storage_from_config_selects_backend(tmp_path):
    local = storage_from_config({"STORAGE_BACKEND": "local", "UPLOADS_DIR": str(tmp_path)})
    assert isinstance(local, LocalStorage)
    assert local.root == tmp_path

    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": " avatars ", "S3_ENDPOINT": "nyc3.example"})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "avatars"
    assert s3.region == "nyc3"
