import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import Flask, Response, current_app, g, jsonify, request
from pydantic import BaseModel, ValidationError

import auth
import cv_store
from ai_gateway import AIConfigError, AIGateway, AIProviderError
from ai_normalize import AIFormatError, normalize_response
from ai_prompts import PromptError, build_prompt
from config import Settings, configure_logging
from db import init_db, verify_connection
from models import CVData
from site_settings import public_measurement_id, read_ga_config, resolve_property_id, write_ga_config
from utils import THEMES, list_templates, render_cv_docx_bytes, render_cv_html, render_cv_pdf_bytes

logger = logging.getLogger(__name__)

EXPORT_MIMETYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "html": "text/html; charset=utf-8",
}


def error(message: str, status: int):
    return jsonify({"error": message}), status


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# -------------------------
# Auth decorators
# -------------------------
def require_auth(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return error("Not authorized, no token", 401)
        try:
            g.user = auth.decode_token(header[len("Bearer "):].strip(), current_app.config["SETTINGS"].jwt_secret)
        except auth.AuthError as e:
            return error(str(e), 401)
        return view(*args, **kwargs)

    return wrapper


def require_admin(view):
    @wraps(view)
    @require_auth
    def wrapper(*args, **kwargs):
        if not g.user["is_admin"]:
            return error("Not authorized as an admin", 403)
        return view(*args, **kwargs)

    return wrapper


def _token_response(user: dict, status: int = 200):
    settings = current_app.config["SETTINGS"]
    token = auth.create_token(user, settings.jwt_secret, settings.jwt_expires_hours)
    return jsonify({"token": token, "user": user}), status


def _fragment_json(fragment):
    if isinstance(fragment, BaseModel):
        return jsonify(fragment.to_wire())
    return jsonify(fragment)


def _cv_payload(value):
    """cv_data from a request body, validated and re-serialized in wire form."""
    if isinstance(value, str):
        return CVData.model_validate_json(value)
    return CVData.model_validate(value)


# -------------------------
# App factory
# -------------------------
def create_app(settings: Settings = None, gateway: AIGateway = None) -> Flask:
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.extensions["ai_gateway"] = gateway or AIGateway.from_settings(settings)

    init_db()

    @app.errorhandler(404)
    def not_found(_e):
        return error("Not found", 404)

    @app.errorhandler(500)
    def server_error(_e):
        return error("Internal server error", 500)

    # AI pipeline failures
    @app.errorhandler(PromptError)
    def prompt_error(e):
        return error(str(e), 400)

    @app.errorhandler(AIConfigError)
    def ai_config_error(e):
        return error(str(e), 503)

    @app.errorhandler(AIProviderError)
    @app.errorhandler(AIFormatError)
    def ai_upstream_error(e):
        return error(str(e), 502)

    @app.get("/")
    def health():
        return "CV builder API is running"

    # ---------- auth ----------
    @app.post("/api/auth/register")
    def register():
        data = _body()
        username = (data.get("username") or "").strip()
        email = (data.get("email") or "").strip()
        password = data.get("password") or ""
        if not username or not email or not password:
            return error("Username, email, and password are required", 400)

        try:
            user = auth.create_user(username, email, password)
        except auth.DuplicateUserError as e:
            return error(str(e), 409)

        logger.info(f"[AUTH] Registered user {user['id']}")
        return _token_response(user, 201)

    @app.post("/api/auth/login")
    def login():
        data = _body()
        email = (data.get("email") or "").strip()
        password = data.get("password") or ""
        if not email or not password:
            return error("Email and password are required", 400)

        user = auth.authenticate_user(email, password)
        if not user:
            logger.info("[AUTH] Failed login attempt")
            return error("Invalid credentials", 401)
        return _token_response(user)

    # ---------- current user ----------
    @app.get("/api/users/me")
    @require_auth
    def me():
        user = auth.get_user_by_id(g.user["user_id"])
        if not user:
            return error("User not found", 404)
        return jsonify(user)

    @app.put("/api/users/me")
    @require_auth
    def update_me():
        data = _body()
        try:
            user = auth.update_user(
                g.user["user_id"],
                username=data.get("username"),
                email=data.get("email"),
                password=data.get("password"),
            )
        except auth.DuplicateUserError as e:
            return error(str(e), 409)
        except ValueError as e:
            return error(str(e), 400)

        if not user:
            return error("User not found", 404)
        return jsonify(user)

    # ---------- CVs ----------
    @app.post("/api/cvs")
    @require_auth
    def create_cv():
        data = _body()
        if data.get("cv_data") is None:
            return error("cv_data is required", 400)
        try:
            cv = _cv_payload(data["cv_data"])
        except ValidationError as e:
            return error(f"Invalid cv_data: {e.error_count()} error(s)", 400)

        record = cv_store.create_cv(g.user["user_id"], cv, data.get("template_id"), data.get("name"))
        auth.increment_usage(g.user["user_id"], "cv_saves")
        return jsonify(record), 201

    @app.get("/api/cvs")
    @require_auth
    def list_cvs():
        return jsonify(cv_store.list_cvs(g.user["user_id"]))

    @app.get("/api/cvs/<int:cv_id>")
    @require_auth
    def get_cv(cv_id: int):
        record = cv_store.get_cv(g.user["user_id"], cv_id)
        if not record:
            return error("CV not found or not authorized", 404)
        return jsonify(record)

    @app.put("/api/cvs/<int:cv_id>")
    @require_auth
    def update_cv(cv_id: int):
        data = _body()
        fields = {k: data.get(k) for k in cv_store.UPDATABLE_FIELDS}
        if fields["cv_data"] is not None:
            try:
                fields["cv_data"] = _cv_payload(fields["cv_data"])
            except ValidationError as e:
                return error(f"Invalid cv_data: {e.error_count()} error(s)", 400)

        try:
            record = cv_store.update_cv(g.user["user_id"], cv_id, **fields)
        except ValueError as e:
            return error(str(e), 400)

        if not record:
            return error("CV not found or not authorized", 404)
        if fields["cv_data"] is not None:
            auth.increment_usage(g.user["user_id"], "cv_saves")
        return jsonify(record)

    @app.delete("/api/cvs/<int:cv_id>")
    @require_auth
    def delete_cv(cv_id: int):
        if not cv_store.delete_cv(g.user["user_id"], cv_id):
            return error("CV not found or not authorized", 404)
        return jsonify({"message": "CV deleted successfully"})

    @app.get("/api/cvs/<int:cv_id>/export")
    @require_auth
    def export_cv(cv_id: int):
        fmt = (request.args.get("format") or "pdf").lower()
        if fmt not in EXPORT_MIMETYPES:
            return error(f"Unsupported export format: {fmt}", 400)

        record = cv_store.get_cv(g.user["user_id"], cv_id)
        if not record:
            return error("CV not found or not authorized", 404)

        cv = CVData.model_validate(record["cv_data"])
        theme = THEMES.get(request.args.get("theme") or "")

        if fmt == "html":
            body = render_cv_html(cv, record.get("template_id"), theme)
        elif fmt == "docx":
            body = render_cv_docx_bytes(cv)
        else:
            try:
                body = render_cv_pdf_bytes(cv, record.get("template_id"), theme)
            except RuntimeError as e:
                return error(str(e), 500)

        filename = f"{(record.get('name') or 'cv').strip().replace(' ', '_')}.{fmt}"
        return Response(
            body,
            mimetype=EXPORT_MIMETYPES[fmt],
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/cv-templates")
    def cv_templates():
        return jsonify(list_templates())

    # ---------- AI ----------
    @app.post("/api/ai/generate")
    @require_auth
    def ai_generate():
        data = _body()
        gateway: AIGateway = current_app.extensions["ai_gateway"]
        if not gateway.configured:
            return error("AI Service is not configured or API key is missing.", 503)

        section_type = data.get("sectionType")
        user_input = data.get("userInput")
        if not section_type or user_input is None:
            return error("sectionType and userInput are required fields.", 400)

        prompt, expects_json = build_prompt(section_type, user_input, data.get("context"))
        raw = gateway.generate(prompt, expects_json)
        fragment = normalize_response(section_type, raw, str(user_input))

        auth.increment_usage(g.user["user_id"], "ai_generations")
        logger.info(f"[AI] Generated {section_type} for user {g.user['user_id']}")
        return _fragment_json(fragment)

    # ---------- admin ----------
    @app.get("/api/admin/users")
    @require_admin
    def admin_users():
        return jsonify(auth.get_all_users())

    @app.put("/api/admin/users/<int:user_id>/toggle-active")
    @require_admin
    def admin_toggle_active(user_id: int):
        user = auth.toggle_active(user_id)
        if not user:
            return error("User not found.", 404)
        state = "active" if user["is_active"] else "inactive"
        return jsonify({
            "message": f"User status updated successfully. User is now {state}.",
            "userId": user_id,
            "isActive": user["is_active"],
        })

    @app.get("/api/admin/analytics/overview")
    @require_admin
    def admin_overview():
        days = request.args.get("days", default=30, type=int)
        since = (datetime.now(timezone.utc) - timedelta(days=max(days, 1))).isoformat()

        overview = auth.usage_overview(since)
        overview["total_cvs"] = cv_store.count_cvs()
        overview["cvs_updated"] = cv_store.count_cvs(updated_since=since)
        overview["days"] = days
        overview["ga"] = resolve_property_id(settings.ga_config_path, settings.ga_property_id)
        return jsonify(overview)

    @app.get("/api/admin/settings/ga")
    @require_admin
    def admin_get_ga():
        try:
            config = read_ga_config(settings.ga_config_path)
        except (OSError, ValueError):
            logger.exception("[SETTINGS] Error retrieving GA settings")
            return error("Failed to retrieve GA settings due to a server error.", 500)
        return jsonify({
            "measurementId": config.get("measurementId", ""),
            "propertyId": config.get("propertyId", ""),
        })

    @app.post("/api/admin/settings/ga")
    @require_admin
    def admin_save_ga():
        data = _body()
        measurement_id = data.get("measurementId")
        property_id = data.get("propertyId")
        if not isinstance(measurement_id, str) or not isinstance(property_id, str):
            return error("Measurement ID and Property ID must be strings.", 400)
        if not measurement_id.strip() or not property_id.strip():
            return error("Measurement ID and Property ID cannot be empty.", 400)

        try:
            write_ga_config(settings.ga_config_path, measurement_id, property_id)
        except (OSError, ValueError):
            logger.exception("[SETTINGS] Error saving GA settings")
            return error("Failed to save GA settings due to a server error.", 500)
        return jsonify({"success": True, "message": "GA settings saved successfully."})

    @app.get("/api/settings/ga/public-measurement-id")
    def public_ga():
        return jsonify({"measurementId": public_measurement_id(settings.ga_config_path)})

    return app


if __name__ == "__main__":
    _settings = Settings.from_env()
    configure_logging(_settings.log_level)
    verify_connection()
    create_app(_settings).run(host="0.0.0.0", port=_settings.port)
