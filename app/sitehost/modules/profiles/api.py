from __future__ import annotations

import mimetypes

from flask import Blueprint, current_app, jsonify, request, send_file

from app.sitehost.auth import current_user, login_required
from app.sitehost.db import db_session
from app.sitehost.errors import InvalidInput, NotFound
from app.sitehost.modules.profiles.service import profile_picture_key, save_profile_picture
from app.sitehost.storage import storage_from_config

bp = Blueprint("profiles", __name__)


@bp.post("/api/profile-picture")
@login_required
def profile_picture_upload():
    f = request.files.get("profilePicture")
    if not f or not f.filename:
        raise InvalidInput("No file uploaded")

    s = db_session()
    u = current_user()
    url = save_profile_picture(s, storage_from_config(current_app.config), u, f.read(), f.mimetype)
    s.commit()

    current_app.logger.info("Profile picture updated for user id=%s", u.id)
    return jsonify({"profileImageUrl": url})


@bp.get("/uploads/profiles/<filename>")
def profile_picture_get(filename: str):
    storage = storage_from_config(current_app.config)
    key = profile_picture_key(filename)
    if not storage.exists(key):
        raise NotFound("Profile picture not found")
    mimetype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return send_file(storage.open(key), mimetype=mimetype, download_name=filename)
