from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.sitehost.audit import list_website_logs
from app.sitehost.auth import current_user, login_required
from app.sitehost.db import db_session
from app.sitehost.modules.templates.store import template_store_from_config
from app.sitehost.modules.websites.directories import directories_from_config
from app.sitehost.modules.websites.service import (
    apply_template,
    create_website,
    delete_website,
    get_owned_website,
    update_website,
    website_url,
    websites_for_user,
)
from app.sitehost.utils import json_payload

bp = Blueprint("websites", __name__)


# ---------- List / Detail ----------
@bp.get("/websites")
@login_required
def websites_list():
    s = db_session()
    return jsonify([w.to_dict() for w in websites_for_user(s, current_user())])


@bp.get("/websites/<int:website_id>")
@login_required
def website_detail(website_id: int):
    s = db_session()
    website = get_owned_website(s, website_id, current_user())
    return jsonify(website.to_dict())


# ---------- Create ----------
@bp.post("/websites")
@login_required
def websites_create():
    s = db_session()
    u = current_user()
    payload = json_payload()

    website = create_website(s, directories_from_config(current_app.config), payload, u)
    s.commit()

    current_app.logger.info("Website created id=%s user=%s subdomain=%s", website.id, u.id, website.subdomain)
    return jsonify(website.to_dict()), 201


# ---------- Update ----------
@bp.patch("/websites/<int:website_id>")
@login_required
def websites_update(website_id: int):
    s = db_session()
    website = get_owned_website(s, website_id, current_user())
    payload = json_payload()
    payload.pop("userId", None)
    payload.pop("subdomain", None)

    update_website(s, website, payload)
    s.commit()
    return jsonify(website.to_dict())


# ---------- Delete ----------
@bp.delete("/websites/<int:website_id>")
@login_required
def websites_delete(website_id: int):
    s = db_session()
    website = get_owned_website(s, website_id, current_user())

    delete_website(s, directories_from_config(current_app.config), website)
    s.commit()
    return jsonify({"message": "Website deleted successfully"})


# ---------- Apply template ----------
@bp.post("/websites/<int:website_id>/change-script")
@login_required
def websites_change_script(website_id: int):
    s = db_session()
    website = get_owned_website(s, website_id, current_user())
    payload = json_payload()

    apply_template(
        s,
        directories_from_config(current_app.config),
        template_store_from_config(current_app.config),
        website,
        payload.get("scriptName"),
    )
    s.commit()

    return jsonify(
        {
            "message": "Script changed successfully",
            "website": website.to_dict(),
            "url": website_url(website.subdomain, current_app.config["SITE_BASE_DOMAIN"]),
        }
    )


# ---------- Files / Logs ----------
@bp.get("/websites/<int:website_id>/files")
@login_required
def website_files(website_id: int):
    s = db_session()
    website = get_owned_website(s, website_id, current_user())
    tree = directories_from_config(current_app.config).list_tree(website.user_id, website.subdomain)
    return jsonify(tree)


@bp.get("/websites/<int:website_id>/logs")
@login_required
def website_logs(website_id: int):
    s = db_session()
    website = get_owned_website(s, website_id, current_user())
    return jsonify([entry.to_dict() for entry in list_website_logs(s, website)])
