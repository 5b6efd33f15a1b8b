import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from models import utcnow
from services.errors import Unauthorized

cron_bp = Blueprint("cron", __name__)

logger = logging.getLogger(__name__)


def _check_cron_secret():
    secret = current_app.config.get("CRON_SECRET")
    auth_header = request.headers.get("Authorization", "")
    if not secret or not auth_header.startswith("Bearer "):
        raise Unauthorized("Unauthorized")
    token = auth_header.split("Bearer ", 1)[1]
    if not hmac.compare_digest(token.encode(), secret.encode()):
        raise Unauthorized("Unauthorized")


@cron_bp.route("/auto-archive", methods=["POST"])
def auto_archive():
    try:
        _check_cron_secret()
    except Unauthorized as exc:
        logger.warning("Rejected auto-archive trigger from %s", request.remote_addr)
        return jsonify({"success": False, "error": str(exc)}), 401

    logger.info("Starting scheduled auto-archive")
    try:
        result = current_app.extensions["archive_scheduler"].run_remote()
    except Exception as exc:
        logger.exception("Unexpected error in auto-archive cron")
        return jsonify({"success": False, "error": "Internal server error", "details": str(exc), "archivedCount": 0}), 500

    if result.error:
        return jsonify({"success": False, "error": result.error_message, "archivedCount": result.archived_count}), 500

    return jsonify({
        "success": True,
        "message": f"Successfully archived {result.archived_count} tasks",
        "archivedCount": result.archived_count,
        "timestamp": utcnow().isoformat() + "Z",
    })
