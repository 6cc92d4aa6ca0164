"""Unit tests for the on-disk template store."""
import pytest

from _helpers import make_zip
from app.sitehost.errors import InvalidInput
from app.sitehost.modules.templates.store import TemplateExtractionError, TemplateStore, template_store_from_config


@pytest.fixture()
def store(tmp_path):
    return TemplateStore(tmp_path / "allscripts")


def test_list_available_missing_directory(store):
    assert store.list_available() == []


def test_list_available_only_archives(store):
    store.upload("b.zip", make_zip({"index.html": "b"}))
    store.upload("a.zip", make_zip({"index.html": "a"}))
    (store.directory / "notes.txt").write_text("ignore me")
    (store.directory / "nested.zip").mkdir()

    assert store.list_available() == ["a.zip", "b.zip"]


def test_upload_overwrites(store):
    store.upload("a.zip", b"first")
    store.upload("a.zip", b"second")
    assert (store.directory / "a.zip").read_bytes() == b"second"
    assert store.exists("a.zip")


def test_delete_tolerates_absence(store):
    store.upload("a.zip", b"x")
    assert store.delete("a.zip") is True
    assert not store.exists("a.zip")
    assert store.delete("a.zip") is False


@pytest.mark.parametrize("bad", ["", "..", "../a.zip", "sub/a.zip", "a\\b.zip"])
def test_rejects_non_plain_names(store, bad):
    with pytest.raises(InvalidInput):
        store.exists(bad)


def test_extract_to(store, tmp_path):
    store.upload("site.zip", make_zip({"index.html": "<h1>x</h1>", "css/site.css": "body{}"}))
    dest = tmp_path / "dest"
    dest.mkdir()

    members = store.extract_to("site.zip", dest)
    assert set(members) == {"index.html", "css/site.css"}
    assert (dest / "index.html").read_text() == "<h1>x</h1>"
    assert (dest / "css" / "site.css").read_text() == "body{}"


def test_extract_rejects_corrupt_archive(store, tmp_path):
    store.upload("broken.zip", b"definitely not a zip")
    with pytest.raises(TemplateExtractionError):
        store.extract_to("broken.zip", tmp_path)


def test_extract_rejects_path_traversal(store, tmp_path):
    store.upload("evil.zip", make_zip({"../escaped.txt": "gotcha"}))
    dest = tmp_path / "dest"
    dest.mkdir()

    with pytest.raises(TemplateExtractionError):
        store.extract_to("evil.zip", dest)
    assert not (tmp_path / "escaped.txt").exists()


def test_template_store_from_config(tmp_path):
    s = template_store_from_config({"TEMPLATES_DIR": str(tmp_path / "t")})
    assert s.directory == tmp_path / "t"
