from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from app.sitehost.errors import Conflict, InvalidInput
from app.sitehost.modules.templates.models import ScriptTemplate
from app.sitehost.modules.templates.store import ARCHIVE_EXTENSION

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sitehost.modules.templates.store import TemplateStore


TEMPLATE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
ARCHIVE_CONTENT_TYPES = ("application/zip", "application/x-zip-compressed")
DEFAULT_VERSION = "1.0.0"


def is_archive_upload(filename: str | None, content_type: str | None) -> bool:
    if (content_type or "").split(";")[0].strip().lower() in ARCHIVE_CONTENT_TYPES:
        return True
    return (filename or "").lower().endswith(ARCHIVE_EXTENSION)


def validate_template_payload(payload: dict) -> list[dict]:
    """Validate template upload form fields. Returns list of field errors."""
    errors = []
    name = (payload.get("name") or "").strip()
    if not name:
        errors.append({"field": "name", "message": "Name is required."})
    elif not TEMPLATE_NAME_RE.match(name):
        errors.append({"field": "name", "message": "Name can only contain letters, numbers, hyphens and underscores."})
    if not (payload.get("displayName") or "").strip():
        errors.append({"field": "displayName", "message": "Display name is required."})
    return errors


def archive_file_name(name: str) -> str:
    return f"{name}{ARCHIVE_EXTENSION}"


def create_template(s: "Session", store: "TemplateStore", payload: dict, data: bytes) -> ScriptTemplate:
    """Store the archive and record it in the catalog."""
    errors = validate_template_payload(payload)
    if errors:
        raise InvalidInput(errors=errors)

    name = payload["name"].strip()
    if s.query(ScriptTemplate).filter(ScriptTemplate.name == name).one_or_none():
        raise Conflict("Script with this name already exists")

    file_name = archive_file_name(name)
    store.upload(file_name, data)

    now = datetime.utcnow()
    template = ScriptTemplate(
        name=name,
        display_name=payload["displayName"].strip(),
        description=(payload.get("description") or "").strip() or None,
        version=(payload.get("version") or "").strip() or DEFAULT_VERSION,
        file_name=file_name,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(template)
    s.flush()
    return template


def delete_template(s: "Session", store: "TemplateStore", template: ScriptTemplate) -> None:
    store.delete(template.file_name)
    s.delete(template)


def list_catalog(s: "Session", store: "TemplateStore") -> list[dict]:
    """Active templates with a live ``fileExists`` flag from the store."""
    available = set(store.list_available())
    templates = (
        s.query(ScriptTemplate)
        .filter(ScriptTemplate.is_active.is_(True))
        .order_by(ScriptTemplate.display_name.asc())
        .all()
    )
    out = []
    for t in templates:
        row = t.to_dict()
        row["fileExists"] = t.file_name in available
        out.append(row)
    return out


def sync_catalog_from_store(s: "Session", store: "TemplateStore") -> list[ScriptTemplate]:
    """Register a catalog row for every archive on disk that has none. Idempotent."""
    known = {fn for (fn,) in s.query(ScriptTemplate.file_name).all()}
    known_names = {n for (n,) in s.query(ScriptTemplate.name).all()}
    created = []
    for file_name in store.list_available():
        if file_name in known:
            continue
        name = file_name[: -len(ARCHIVE_EXTENSION)]
        if name in known_names or not TEMPLATE_NAME_RE.match(name):
            continue
        t = ScriptTemplate(
            name=name,
            display_name=name.replace("-", " ").replace("_", " ").title(),
            version=DEFAULT_VERSION,
            file_name=file_name,
            is_active=True,
        )
        s.add(t)
        created.append(t)
    return created
