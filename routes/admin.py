"""管理後台登入路由（訂單儀表板）。"""

from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request, session


admin_bp = Blueprint("campus_threads_admin", __name__, url_prefix="/admin")

SESSION_FLAG = "campus_threads_admin"


def _config():
    return current_app.config["STORE_CONFIG"]


def is_authenticated() -> bool:
    return bool(session.get(SESSION_FLAG))


@admin_bp.post("/login")
def login_submit():
    payload = request.get_json(silent=True) or {}
    password = str(payload.get("password") or request.form.get("password", "")).strip()
    if password and hmac.compare_digest(password.encode("utf-8"), _config().admin_password.encode("utf-8")):
        session[SESSION_FLAG] = True
        return jsonify({"status": "ok"})
    return jsonify({"status": "error", "message": "Incorrect password."}), 401


@admin_bp.post("/logout")
def logout():
    session.pop(SESSION_FLAG, None)
    return jsonify({"status": "ok"})


@admin_bp.get("/session")
def session_state():
    return jsonify({"status": "ok", "admin": is_authenticated()})
