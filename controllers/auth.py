from functools import wraps
from flask import Blueprint, jsonify, request
from flask_login import LoginManager, UserMixin, login_user, logout_user, login_required, current_user
from models.users_db import get_user, verify_password
from models.audit_store import audit

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    def __init__(self, username, role):
        self.id = username
        self.username = username
        self.role = role

    @property
    def is_admin(self):
        return self.role == "admin"


@login_manager.user_loader
def load_user(user_id):
    row = get_user(user_id)
    if not row:
        return None
    return User(row["username"], row["role"])


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "authentication required"}), 401


def admin_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not getattr(current_user, "is_admin", False):
            audit(
                "auth.forbidden",
                target_type="user", target_id=(getattr(current_user, "username", "") or "anonymous"),
                outcome="failure", status=403,
                extra={"reason": "not_admin"}
            )
            return jsonify({"error": "admin only"}), 403
        return f(*args, **kwargs)
    return wrapper


@auth_bp.post("/login")
def login_post():
    data = request.get_json(silent=True) or request.form
    u = (data.get("username") or "").strip()
    p = data.get("password") or ""

    if not verify_password(u, p):
        audit(
            "auth.login.failure",
            target_type="user", target_id=(u or "unknown"),
            outcome="failure", status=401,
            extra={"reason": "bad_credentials"}
        )
        return jsonify({"error": "Invalid username or password."}), 401

    row = get_user(u)
    login_user(User(row["username"], row["role"]))
    audit(
        "auth.login.success",
        target_type="user", target_id=row["username"],
        outcome="success", status=200,
        extra={"note": f"role={row['role']}"}
    )
    return jsonify({"ok": True, "username": row["username"], "role": row["role"]})


@auth_bp.post("/logout")
@login_required
def logout():
    audit(
        "auth.logout",
        target_type="user", target_id=current_user.username,
        outcome="success", status=200
    )
    logout_user()
    return jsonify({"ok": True})
