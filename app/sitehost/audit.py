import json
from typing import Any

from flask import g, has_request_context
from sqlalchemy.orm import Session

from app.sitehost.modules.websites.models import Website, WebsiteLog


def record_website_log(
    s: Session,
    website: Website,
    *,
    action: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> WebsiteLog:
    """
    Append-only audit entry helper.
    The website must already be flushed so it has an id.
    """
    rid = request_id or (getattr(g, "request_id", None) if has_request_context() else None)
    entry = WebsiteLog(
        website_id=website.id,
        action=action,
        details_json=json.dumps(details, sort_keys=True, default=str) if details else None,
        request_id=rid,
    )
    s.add(entry)
    return entry


def list_website_logs(s: Session, website: Website) -> list[WebsiteLog]:
    """Audit entries for a website, newest first."""
    return (
        s.query(WebsiteLog)
        .filter(WebsiteLog.website_id == website.id)
        .order_by(WebsiteLog.created_at.desc(), WebsiteLog.id.desc())
        .all()
    )
