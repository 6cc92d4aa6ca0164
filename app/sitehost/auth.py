from __future__ import annotations

import re
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.sitehost.db import db_session
from app.sitehost.errors import Conflict, InvalidInput, RateLimited, Unauthorized
from app.sitehost.models import User
from app.sitehost.utils import json_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")
_MIN_PASSWORD_LENGTH = 6


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise Unauthorized()
    return u


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            raise Unauthorized()
        return fn(*args, **kwargs)

    return wrapped


def validate_registration_payload(payload: dict) -> list[dict]:
    errors = []
    username = (payload.get("username") or "").strip()
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if not _USERNAME_RE.match(username):
        errors.append({"field": "username", "message": "Username must be 3-64 letters, digits, dots, dashes or underscores."})
    if not _EMAIL_RE.match(email):
        errors.append({"field": "email", "message": "A valid email is required."})
    if len(password) < _MIN_PASSWORD_LENGTH:
        errors.append({"field": "password", "message": f"Password must be at least {_MIN_PASSWORD_LENGTH} characters."})
    for field in ("firstName", "lastName"):
        if not (payload.get(field) or "").strip():
            errors.append({"field": field, "message": f"{field} is required."})
    return errors


@bp.post("/register")
def register():
    payload = json_payload()
    errors = validate_registration_payload(payload)
    if errors:
        raise InvalidInput(errors=errors)

    s = db_session()
    username = payload["username"].strip()
    email = payload["email"].strip().lower()
    if s.query(User).filter(User.username == username).one_or_none():
        raise Conflict("Username already exists")
    if s.query(User).filter(User.email == email).one_or_none():
        raise Conflict("Email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(payload["password"]),
        first_name=payload["firstName"].strip(),
        last_name=payload["lastName"].strip(),
        is_active=True,
    )
    s.add(user)
    s.commit()

    session.clear()
    session["user_id"] = user.id
    current_app.logger.info("Registered user id=%s username=%s", user.id, user.username)
    return jsonify(user.to_dict()), 201


@bp.post("/login")
def login():
    payload = json_payload()
    identifier = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        raise RateLimited("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = (
        s.query(User)
        .filter((User.username == identifier) | (User.email == identifier.lower()))
        .one_or_none()
    )
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        current_app.logger.info("Login failed for %r (request_id=%s)", identifier, getattr(g, "request_id", None))
        raise Unauthorized("Invalid credentials")

    session.clear()
    session["user_id"] = user.id
    _login_attempts[ip].clear()
    return jsonify(user.to_dict())


@bp.post("/logout")
def logout():
    session.pop("user_id", None)
    return jsonify({"message": "Logged out"})


@bp.get("/user")
@login_required
def me():
    return jsonify(current_user().to_dict())
