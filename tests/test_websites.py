"""API tests for the website provisioning workflow."""
import io
from pathlib import Path

import pytest

from _helpers import create_website, file_set, make_zip, register, site_dir, upload_template
from app.sitehost.db import session_scope
from app.sitehost.modules.templates.store import TemplateStore
from app.sitehost.modules.websites import service as website_service
from app.sitehost.modules.websites.directories import SiteDirectoryManager
from app.sitehost.modules.websites.models import Website, WebsiteLog


def _login_new(app, username):
    c = app.test_client()
    r = register(c, username=username)
    assert r.status_code == 201
    return c, r.json["id"]


def _put_archive(app, file_name, data):
    p = Path(app.config["TEMPLATES_DIR"]) / file_name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)


def test_create_website_creates_subtree(app):
    c, uid = _login_new(app, "alice")
    r = create_website(c, description="My first site")
    assert r.status_code == 201
    body = r.json
    assert body["name"] == "Alice Site"
    assert body["subdomain"] == "alice-site"
    assert body["userId"] == uid
    assert body["currentScript"] is None
    assert body["isActive"] is True
    assert body["description"] == "My first site"
    assert site_dir(app, uid, "alice-site").is_dir()

    r = c.get("/api/websites")
    assert [w["id"] for w in r.json] == [body["id"]]
    assert c.get(f"/api/websites/{body['id']}").json["subdomain"] == "alice-site"


def test_second_website_exceeds_quota(app):
    c, uid = _login_new(app, "alice")
    assert create_website(c).status_code == 201

    r = create_website(c, name="Other", subdomain="other-site")
    assert r.status_code == 400
    assert r.json["code"] == "QuotaExceeded"
    assert not site_dir(app, uid, "other-site").exists()


def test_recreate_after_delete_succeeds(app):
    c, _ = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    assert c.delete(f"/api/websites/{wid}").status_code == 200

    r = create_website(c, name="Again", subdomain="alice-again")
    assert r.status_code == 201
    assert create_website(c, name="Third", subdomain="third").json["code"] == "QuotaExceeded"


def test_subdomain_is_globally_unique(app):
    alice, _ = _login_new(app, "alice")
    bob, bob_id = _login_new(app, "bob")
    assert create_website(alice, subdomain="shared").status_code == 201

    r = create_website(bob, name="Bob Site", subdomain="shared")
    assert r.status_code == 400
    assert r.json["code"] == "Conflict"
    assert not site_dir(app, bob_id, "shared").exists()


def test_subdomain_validation(app):
    c, _ = _login_new(app, "alice")
    r = create_website(c, subdomain="My Site!")
    assert r.status_code == 400
    assert r.json["code"] == "InvalidInput"
    assert [e["field"] for e in r.json["errors"]] == ["subdomain"]

    r = create_website(c, name="", subdomain="")
    assert {e["field"] for e in r.json["errors"]} == {"name", "subdomain"}

    r = create_website(c, subdomain="a" * 64)
    assert r.status_code == 400

    assert create_website(c, subdomain="my-site-1").status_code == 201


def test_non_owner_is_forbidden(app):
    alice, _ = _login_new(app, "alice")
    bob, _ = _login_new(app, "bob")
    wid = create_website(alice).json["id"]

    assert bob.get(f"/api/websites/{wid}").status_code == 403
    assert bob.patch(f"/api/websites/{wid}", json={"name": "x"}).status_code == 403
    assert bob.delete(f"/api/websites/{wid}").status_code == 403
    assert bob.post(f"/api/websites/{wid}/change-script", json={"scriptName": "a.zip"}).status_code == 403
    assert bob.get(f"/api/websites/{wid}/files").status_code == 403
    assert bob.get(f"/api/websites/{wid}/logs").status_code == 403


def test_missing_website_is_not_found(app):
    c, _ = _login_new(app, "alice")
    r = c.get("/api/websites/999")
    assert r.status_code == 404
    assert r.json["message"] == "Website not found"


def test_patch_ignores_user_and_subdomain(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]

    r = c.patch(
        f"/api/websites/{wid}",
        json={"name": "Renamed", "subdomain": "hijack", "userId": 999, "isActive": False},
    )
    assert r.status_code == 200
    assert r.json["name"] == "Renamed"
    assert r.json["subdomain"] == "alice-site"
    assert r.json["userId"] == uid
    assert r.json["isActive"] is False

    logs = c.get(f"/api/websites/{wid}/logs").json
    assert logs[0]["action"] == "updated"
    assert logs[0]["details"] == {"name": "Renamed", "isActive": False}


def test_patch_validates_fields(app):
    c, _ = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    r = c.patch(f"/api/websites/{wid}", json={"name": "  ", "isActive": "yes"})
    assert r.status_code == 400
    assert {e["field"] for e in r.json["errors"]} == {"name", "isActive"}
    assert len(c.get(f"/api/websites/{wid}/logs").json) == 1


def test_apply_template_extracts_archive(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    assert upload_template(c, "basic", {"index.html": "<h1>basic</h1>", "css/site.css": "body{}"}).status_code == 201

    r = c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    assert r.status_code == 200
    assert r.json["website"]["currentScript"] == "basic.zip"
    assert r.json["url"] == "https://alice-site.example.test"

    root = site_dir(app, uid, "alice-site")
    assert (root / "index.html").read_text() == "<h1>basic</h1>"
    assert (root / "css" / "site.css").exists()

    tree = c.get(f"/api/websites/{wid}/files").json
    assert tree["index.html"]["size"] == len("<h1>basic</h1>")
    assert "site.css" in tree["css"]


def test_apply_template_twice_is_idempotent(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "x", "img/logo.svg": "<svg/>"})
    root = site_dir(app, uid, "alice-site")

    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    once = file_set(root)
    r = c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    assert r.status_code == 200
    assert file_set(root) == once == {"index.html", "img", "img/logo.svg"}


def test_switching_template_discards_previous_files(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "basic", "about.html": "about"})
    upload_template(c, "landing", {"index.html": "landing"})
    root = site_dir(app, uid, "alice-site")

    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    r = c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "landing.zip"})
    assert r.status_code == 200
    assert file_set(root) == {"index.html"}
    assert (root / "index.html").read_text() == "landing"

    logs = c.get(f"/api/websites/{wid}/logs").json
    assert logs[0]["details"] == {"oldScript": "basic.zip", "newScript": "landing.zip"}


def test_apply_missing_template_changes_nothing(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "basic"})
    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    root = site_dir(app, uid, "alice-site")
    before = file_set(root)
    log_count = len(c.get(f"/api/websites/{wid}/logs").json)

    r = c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "nope.zip"})
    assert r.status_code == 404
    assert r.json["message"] == "Script not found"
    assert c.get(f"/api/websites/{wid}").json["currentScript"] == "basic.zip"
    assert file_set(root) == before
    assert len(c.get(f"/api/websites/{wid}/logs").json) == log_count


def test_apply_requires_plain_script_name(app):
    c, _ = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    assert c.post(f"/api/websites/{wid}/change-script", json={}).status_code == 400
    assert c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "../x.zip"}).status_code == 400


def test_failed_extraction_keeps_previous_site(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "basic"})
    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    _put_archive(app, "broken.zip", b"this is not a zip archive")

    r = c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "broken.zip"})
    assert r.status_code == 500
    assert "Failed to extract script" in r.json["message"]

    root = site_dir(app, uid, "alice-site")
    assert (root / "index.html").read_text() == "basic"
    assert c.get(f"/api/websites/{wid}").json["currentScript"] == "basic.zip"
    # no staging directories left next to the site
    assert sorted(p.name for p in root.parent.iterdir()) == ["alice-site"]


def test_traversal_archive_is_rejected(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    _put_archive(app, "evil.zip", make_zip({"../../escape.txt": "pwned"}))

    r = c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "evil.zip"})
    assert r.status_code == 500
    assert not (site_dir(app, uid, "alice-site").parent.parent / "escape.txt").exists()
    assert c.get(f"/api/websites/{wid}").json["currentScript"] is None


def test_delete_removes_row_subtree_and_logs(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "basic"})
    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})

    r = c.delete(f"/api/websites/{wid}")
    assert r.status_code == 200
    assert r.json["message"] == "Website deleted successfully"
    assert not site_dir(app, uid, "alice-site").exists()
    assert c.get(f"/api/websites/{wid}").status_code == 404

    with session_scope(app) as s:
        assert s.get(Website, wid) is None
        assert s.query(WebsiteLog).filter(WebsiteLog.website_id == wid).count() == 0


def test_delete_tolerates_missing_subtree(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    site_dir(app, uid, "alice-site").rmdir()
    assert c.delete(f"/api/websites/{wid}").status_code == 200


def test_files_listing_missing_subtree_is_null(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    assert c.get(f"/api/websites/{wid}/files").json == {}
    site_dir(app, uid, "alice-site").rmdir()
    assert c.get(f"/api/websites/{wid}/files").json is None


def test_audit_log_counts_and_order(app):
    c, _ = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "basic"})
    c.patch(f"/api/websites/{wid}", json={"description": "hello"})
    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "basic.zip"})
    c.patch(f"/api/websites/{wid}", json={"name": "Renamed"})
    # failed operations do not add entries
    c.post(f"/api/websites/{wid}/change-script", json={"scriptName": "missing.zip"})

    logs = c.get(f"/api/websites/{wid}/logs").json
    assert [entry["action"] for entry in logs] == ["updated", "script_changed", "updated", "created"]
    assert logs[-1]["details"] == {"name": "Alice Site", "subdomain": "alice-site"}
    assert all(entry["websiteId"] == wid for entry in logs)


def test_directory_failure_skips_persistence(app, monkeypatch):
    c, uid = _login_new(app, "alice")

    def _disk_full(self, user_id, subdomain):
        raise OSError("disk full")

    monkeypatch.setattr(SiteDirectoryManager, "create_subtree", _disk_full)
    r = create_website(c)
    assert r.status_code == 500
    assert r.json["code"] == "Internal"
    assert "disk full" in r.json["message"]

    with session_scope(app) as s:
        assert s.query(Website).count() == 0


def _insert_competitor(app, monkeypatch, *, user_id, subdomain):
    """Commit a competing website right after the subtree is created, before the insert."""
    original = SiteDirectoryManager.create_subtree

    def _create_then_lose_race(self, uid, sub):
        path = original(self, uid, sub)
        with session_scope(app) as s:
            s.add(Website(user_id=user_id, name="Winner", subdomain=subdomain))
        return path

    monkeypatch.setattr(SiteDirectoryManager, "create_subtree", _create_then_lose_race)


def test_subdomain_race_maps_to_conflict(app, monkeypatch):
    alice, alice_id = _login_new(app, "alice")
    _, bob_id = _login_new(app, "bob")
    _insert_competitor(app, monkeypatch, user_id=bob_id, subdomain="shared")

    r = create_website(alice, subdomain="shared")
    assert r.status_code == 400
    assert r.json["code"] == "Conflict"
    assert not site_dir(app, alice_id, "shared").exists()

    with session_scope(app) as s:
        rows = s.query(Website).all()
        assert [(w.user_id, w.subdomain) for w in rows] == [(bob_id, "shared")]


def test_quota_race_maps_to_quota_exceeded(app, monkeypatch):
    c, uid = _login_new(app, "alice")
    _insert_competitor(app, monkeypatch, user_id=uid, subdomain="alice-other")

    r = create_website(c, subdomain="alice-site")
    assert r.status_code == 400
    assert r.json["code"] == "QuotaExceeded"
    assert not site_dir(app, uid, "alice-site").exists()


def test_overlapping_applies_record_latest_previous_script(app):
    c, uid = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    upload_template(c, "basic", {"index.html": "basic"})
    upload_template(c, "landing", {"index.html": "landing"})

    directories = SiteDirectoryManager(app.config["SITES_ROOT"])
    store = TemplateStore(app.config["TEMPLATES_DIR"])
    with session_scope(app) as late:
        stale = late.get(Website, wid)
        assert stale.current_script is None

        with session_scope(app) as early:
            website_service.apply_template(early, directories, store, early.get(Website, wid), "basic.zip")

        website_service.apply_template(late, directories, store, stale, "landing.zip")

    logs = c.get(f"/api/websites/{wid}/logs").json
    assert logs[0]["details"] == {"oldScript": "basic.zip", "newScript": "landing.zip"}
    assert logs[1]["details"] == {"oldScript": None, "newScript": "basic.zip"}


def test_delete_releases_website_lock(app):
    c, _ = _login_new(app, "alice")
    wid = create_website(c).json["id"]
    c.patch(f"/api/websites/{wid}", json={"name": "Renamed"})
    assert wid in website_service._website_locks

    c.delete(f"/api/websites/{wid}")
    assert wid not in website_service._website_locks


@pytest.mark.parametrize(
    "path, field, expected",
    [
        ("/api/profile-picture", "profilePicture", "5MB"),
        ("/api/scripts/upload", "script", "6MB"),
    ],
)
def test_oversized_upload_reports_route_limit(app, path, field, expected):
    app.config["MAX_CONTENT_LENGTH"] = 6 * 1024 * 1024
    c, _ = _login_new(app, "alice")
    r = c.post(
        path,
        data={field: (io.BytesIO(b"\x00" * (7 * 1024 * 1024)), "big.zip", "application/zip")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 413
    assert expected in r.json["message"]
