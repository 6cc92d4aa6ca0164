from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.sitehost.auth import login_required
from app.sitehost.db import db_session
from app.sitehost.errors import InvalidInput, NotFound
from app.sitehost.modules.templates.models import ScriptTemplate
from app.sitehost.modules.templates.service import create_template, delete_template, is_archive_upload, list_catalog
from app.sitehost.modules.templates.store import template_store_from_config

bp = Blueprint("templates", __name__)


@bp.get("/scripts")
@login_required
def scripts_list():
    s = db_session()
    store = template_store_from_config(current_app.config)
    return jsonify(list_catalog(s, store))


@bp.post("/scripts/upload")
@login_required
def scripts_upload():
    f = request.files.get("script")
    if not f or not f.filename:
        raise InvalidInput("No file uploaded")
    if not is_archive_upload(f.filename, f.mimetype):
        raise InvalidInput("Only ZIP files are allowed")

    payload = {
        "name": request.form.get("name"),
        "displayName": request.form.get("displayName"),
        "description": request.form.get("description"),
        "version": request.form.get("version"),
    }

    s = db_session()
    store = template_store_from_config(current_app.config)
    template = create_template(s, store, payload, f.read())
    s.commit()

    current_app.logger.info("Script template uploaded: name=%s file=%s", template.name, template.file_name)
    return jsonify(template.to_dict()), 201


@bp.delete("/scripts/<int:template_id>")
@login_required
def scripts_delete(template_id: int):
    s = db_session()
    template = s.get(ScriptTemplate, template_id)
    if not template:
        raise NotFound("Script template not found")

    store = template_store_from_config(current_app.config)
    delete_template(s, store, template)
    s.commit()
    return jsonify({"message": "Script template deleted successfully"})
