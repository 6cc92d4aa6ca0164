"""
Website provisioning workflow.

Ties the filesystem subtree, the ``websites`` row and the audit log together.
Callers commit the session; every function leaves it flushed but uncommitted.
"""
from __future__ import annotations

import logging
import re
import threading
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.sitehost.audit import record_website_log
from app.sitehost.errors import Conflict, Forbidden, Internal, InvalidInput, NotFound, QuotaExceeded
from app.sitehost.modules.templates.store import TemplateExtractionError, check_file_name
from app.sitehost.modules.websites.directories import RemovalStatus
from app.sitehost.modules.websites.models import Website

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sitehost.models import User
    from app.sitehost.modules.templates.store import TemplateStore
    from app.sitehost.modules.websites.directories import SiteDirectoryManager

logger = logging.getLogger(__name__)

SUBDOMAIN_RE = re.compile(r"^[a-z0-9-]+$")
SUBDOMAIN_MAX_LENGTH = 63
MAX_WEBSITES_PER_USER = 1
UPDATABLE_FIELDS = {"name": "name", "description": "description", "isActive": "is_active"}

# In-process guard: at most one mutating operation per website at a time.
_website_locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
_website_locks_guard = threading.Lock()


@contextmanager
def website_lock(website_id: int) -> Iterator[None]:
    with _website_locks_guard:
        lock = _website_locks[website_id]
    with lock:
        yield


def website_url(subdomain: str, base_domain: str) -> str:
    return f"https://{subdomain}.{base_domain}"


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_website_payload(payload: dict) -> list[dict]:
    """Validate website creation payload. Returns list of field errors."""
    errors = []
    name = _text(payload.get("name"))
    if not name:
        errors.append({"field": "name", "message": "Website name is required"})
    subdomain = payload.get("subdomain")
    if not isinstance(subdomain, str) or not subdomain:
        errors.append({"field": "subdomain", "message": "Subdomain is required"})
    elif not SUBDOMAIN_RE.match(subdomain):
        errors.append(
            {"field": "subdomain", "message": "Subdomain can only contain lowercase letters, numbers, and hyphens"}
        )
    elif len(subdomain) > SUBDOMAIN_MAX_LENGTH:
        errors.append({"field": "subdomain", "message": f"Subdomain must be at most {SUBDOMAIN_MAX_LENGTH} characters"})
    return errors


def websites_for_user(s: "Session", user: "User") -> list[Website]:
    return (
        s.query(Website)
        .filter(Website.user_id == user.id)
        .order_by(Website.created_at.desc())
        .all()
    )


def get_owned_website(s: "Session", website_id: int, user: "User") -> Website:
    website = s.get(Website, website_id)
    if not website:
        raise NotFound("Website not found")
    if website.user_id != user.id:
        raise Forbidden("Access denied")
    return website


def create_website(s: "Session", directories: "SiteDirectoryManager", payload: dict, user: "User") -> Website:
    """Create the website subtree, then the row, then the ``created`` audit entry."""
    owned = s.query(func.count(Website.id)).filter(Website.user_id == user.id).scalar() or 0
    if owned >= MAX_WEBSITES_PER_USER:
        raise QuotaExceeded()

    errors = validate_website_payload(payload)
    if errors:
        raise InvalidInput(errors=errors)

    subdomain = payload["subdomain"]
    if s.query(Website).filter(Website.subdomain == subdomain).one_or_none():
        raise Conflict("Subdomain already taken")

    try:
        directories.create_subtree(user.id, subdomain)
    except OSError as e:
        logger.error("Failed to create website directory for user=%s subdomain=%s: %s", user.id, subdomain, e)
        raise Internal(f"Failed to create website directory: {e}") from e

    now = datetime.utcnow()
    website = Website(
        user_id=user.id,
        name=_text(payload["name"]),
        subdomain=subdomain,
        description=_text(payload.get("description")) or None,
        current_script=None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(website)
    try:
        s.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent create; report it the way the checks above would.
        s.rollback()
        winner = s.query(Website).filter(Website.subdomain == subdomain).one_or_none()
        if winner is None or winner.user_id != user.id:
            directories.delete_subtree(user.id, subdomain)
        if winner is not None:
            raise Conflict("Subdomain already taken") from e
        raise QuotaExceeded() from e

    record_website_log(
        s,
        website,
        action="created",
        details={"name": website.name, "subdomain": website.subdomain},
    )
    return website


def update_website(s: "Session", website: Website, payload: dict) -> Website:
    """
    Apply a partial update. ``userId``, ``subdomain`` and unknown keys are ignored.
    """
    errors = []
    changes: dict[str, object] = {}
    with website_lock(website.id):
        for key, attr in UPDATABLE_FIELDS.items():
            if key not in payload:
                continue
            value = payload[key]
            if key == "name":
                value = _text(value)
                if not value:
                    errors.append({"field": "name", "message": "Website name is required"})
                    continue
            elif key == "description":
                value = _text(value) or None
            elif key == "isActive":
                if not isinstance(value, bool):
                    errors.append({"field": "isActive", "message": "isActive must be a boolean"})
                    continue
            if getattr(website, attr) != value:
                changes[key] = value
        if errors:
            raise InvalidInput(errors=errors)

        for key, value in changes.items():
            setattr(website, UPDATABLE_FIELDS[key], value)
        website.updated_at = datetime.utcnow()
        s.flush()

        record_website_log(s, website, action="updated", details=changes)
    return website


def apply_template(
    s: "Session",
    directories: "SiteDirectoryManager",
    store: "TemplateStore",
    website: Website,
    template_file_name: str | None,
) -> Website:
    """
    Replace the website's files with the contents of a template archive.

    Extraction happens in a staging directory; the live subtree and
    ``current_script`` only change once it succeeded.
    """
    if not isinstance(template_file_name, str) or not template_file_name.strip():
        raise InvalidInput("Script name is required", errors=[{"field": "scriptName", "message": "Script name is required"}])
    file_name = check_file_name(template_file_name)
    if not store.exists(file_name):
        raise NotFound("Script not found")

    with website_lock(website.id):
        # another request may have applied a template while we waited
        s.refresh(website)
        old_script = website.current_script
        try:
            directories.replace_subtree(
                website.user_id,
                website.subdomain,
                lambda staging: store.extract_to(file_name, staging),
            )
        except (TemplateExtractionError, OSError) as e:
            logger.error("Failed to apply template %s to website id=%s: %s", file_name, website.id, e)
            raise Internal(f"Failed to extract script: {e}") from e

        website.current_script = file_name
        website.updated_at = datetime.utcnow()
        s.flush()

        record_website_log(
            s,
            website,
            action="script_changed",
            details={"oldScript": old_script, "newScript": file_name},
        )
    logger.info("Applied template %s to website id=%s (was %s)", file_name, website.id, old_script)
    return website


def delete_website(s: "Session", directories: "SiteDirectoryManager", website: Website) -> None:
    """Tear down the subtree (best effort) and delete the row; audit entries cascade."""
    with website_lock(website.id):
        result = directories.delete_subtree(website.user_id, website.subdomain)
        if result.status is RemovalStatus.PARTIAL:
            logger.warning(
                "Website id=%s deleted with leftover files at %s: %s", website.id, result.path, result.cause
            )
        s.delete(website)
        s.flush()
    with _website_locks_guard:
        _website_locks.pop(website.id, None)
