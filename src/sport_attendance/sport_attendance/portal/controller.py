from __future__ import annotations

import io
from functools import wraps

import qrcode
from flask import Flask, jsonify, request, send_file, session

from ..common.validators import require_id_list, require_positive_int
from ..core.enums import Role
from ..core.exceptions import DomainError
from ..container import Container

API_PREFIX = "/api/sports"


def register(app: Flask, container: Container) -> None:
    portal = container.portal

    def json_errors(view):
        """Turn domain errors into typed JSON results instead of crashing the request."""

        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except DomainError as e:
                body = {"success": False, "error": e.code, "message": str(e)}
                if getattr(e, "session_id", None) is not None:
                    body["session_id"] = e.session_id
                return jsonify(body), e.status
            except Exception:
                app.logger.exception("Unhandled error in %s", request.path)
                return jsonify({"success": False, "error": "internal_error", "message": "Internal error"}), 500

        return wrapper

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "error": "unauthorized", "message": "Login required"}), 401
            return view(*args, **kwargs)

        return wrapper

    def admin_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "error": "unauthorized", "message": "Login required"}), 401
            if session.get("role") != Role.ADMIN.value:
                return jsonify({"success": False, "error": "forbidden", "message": "Access denied"}), 403
            return view(*args, **kwargs)

        return wrapper

    def current_user_id() -> int:
        return int(session["user_id"])

    def body() -> dict:
        return request.get_json(silent=True) or {}

    # Teacher: session management

    @app.route(f"{API_PREFIX}/start-session", methods=["POST"], endpoint="sports_start_session")
    @login_required
    @json_errors
    def start_session():
        data = body()
        section_id = require_positive_int(data.get("section_id"), "section_id")
        slot_id = data.get("slot_id")
        slot_id = require_positive_int(slot_id, "slot_id") if slot_id is not None else None
        return jsonify({"success": True, **portal.start_session(current_user_id(), section_id, slot_id=slot_id)})

    @app.route(f"{API_PREFIX}/session/<int:session_id>/code", endpoint="sports_live_code")
    @login_required
    @json_errors
    def live_code(session_id: int):
        # Polled by the instructor screen every few seconds.
        return jsonify({"success": True, **portal.get_live_code(session_id, current_user_id())})

    @app.route(f"{API_PREFIX}/session/<int:session_id>/code.png", endpoint="sports_live_code_image")
    @login_required
    @json_errors
    def live_code_image(session_id: int):
        code = portal.live_code_text(session_id, current_user_id())

        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=2,
        )
        qr.add_data(code)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        buf.seek(0)
        response = send_file(buf, mimetype="image/png")
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.route(f"{API_PREFIX}/session/<int:session_id>/end", methods=["POST"], endpoint="sports_end_session")
    @login_required
    @json_errors
    def end_session(session_id: int):
        confirmed = require_id_list(body().get("confirmed_student_ids"), "confirmed_student_ids")
        return jsonify({"success": True, **portal.end_session(session_id, current_user_id(), confirmed)})

    @app.route(f"{API_PREFIX}/session/<int:session_id>/cancel", methods=["POST"], endpoint="sports_cancel_session")
    @login_required
    @json_errors
    def cancel_session(session_id: int):
        return jsonify({"success": True, **portal.cancel_session(session_id, current_user_id())})

    @app.route(f"{API_PREFIX}/my-sessions", endpoint="sports_my_sessions")
    @login_required
    @json_errors
    def my_sessions():
        return jsonify(portal.my_sessions(current_user_id()))

    # Student: check-in and progress

    @app.route(f"{API_PREFIX}/checkin", methods=["POST"], endpoint="sports_checkin")
    @login_required
    @json_errors
    def checkin():
        return jsonify({"success": True, **portal.checkin(body().get("code"), current_user_id())})

    @app.route(f"{API_PREFIX}/my-progress", endpoint="sports_my_progress")
    @login_required
    @json_errors
    def my_progress():
        return jsonify(portal.get_progress(current_user_id()))

    @app.route(f"{API_PREFIX}/my-attendance", endpoint="sports_my_attendance")
    @login_required
    @json_errors
    def my_attendance():
        return jsonify(portal.my_attendance(current_user_id()))

    # Admin: audit

    @app.route(f"{API_PREFIX}/admin/integrity/<int:student_id>", endpoint="sports_admin_integrity")
    @admin_required
    @json_errors
    def admin_integrity(student_id: int):
        return jsonify(portal.audit_chain(student_id))

    @app.route(f"{API_PREFIX}/admin/student-search", endpoint="sports_admin_student_search")
    @admin_required
    @json_errors
    def admin_student_search():
        return jsonify(portal.student_search(request.args.get("q")))

    @app.route(f"{API_PREFIX}/admin/stats", endpoint="sports_admin_stats")
    @admin_required
    @json_errors
    def admin_stats():
        return jsonify(portal.admin_stats())

    @app.route(f"{API_PREFIX}/admin/sessions", endpoint="sports_admin_sessions")
    @admin_required
    @json_errors
    def admin_sessions():
        return jsonify(portal.admin_sessions())
