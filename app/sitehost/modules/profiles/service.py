from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.sitehost.errors import InvalidInput

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.sitehost.models import User
    from app.sitehost.storage import Storage

MAX_PROFILE_PICTURE_BYTES = 5 * 1024 * 1024
PROFILE_KEY_PREFIX = "profiles"
PROFILE_URL_PREFIX = "/uploads/profiles"


def profile_picture_key(file_name: str) -> str:
    safe = secure_filename(file_name or "")
    if not safe:
        raise InvalidInput("Invalid file name")
    return f"{PROFILE_KEY_PREFIX}/{safe}"


def build_profile_file_name(user_id: int, content_type: str, now_ms: int | None = None) -> str:
    ext = secure_filename(content_type.split("/", 1)[1]) or "img"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"profile-{user_id}-{stamp}.{ext}"


def save_profile_picture(
    s: "Session",
    storage: "Storage",
    user: "User",
    data: bytes,
    content_type: str | None,
) -> str:
    """Store an avatar image and point the user's profile at it. Returns the public URL."""
    content_type = (content_type or "").split(";")[0].strip().lower()
    if not content_type.startswith("image/") or content_type == "image/":
        raise InvalidInput("Only image files are allowed")
    if len(data) > MAX_PROFILE_PICTURE_BYTES:
        raise InvalidInput("File too large. Maximum size is 5MB.")
    if not data:
        raise InvalidInput("No file uploaded")

    file_name = build_profile_file_name(user.id, content_type)
    storage.put_bytes(profile_picture_key(file_name), data, content_type=content_type)

    user.profile_image_url = f"{PROFILE_URL_PREFIX}/{file_name}"
    user.updated_at = datetime.utcnow()
    s.flush()
    return user.profile_image_url
