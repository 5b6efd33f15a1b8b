from functools import wraps
from flask import current_app, request, jsonify
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import id_token
from google.auth.transport import requests as google_requests


def require_auth(f):
    """Decorator that verifies Google OAuth token and checks email whitelist."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "data": None, "error": "Missing or invalid authorization header", "message": None}), 401

        token = auth_header.split("Bearer ")[1]

        try:
            idinfo = id_token.verify_oauth2_token(
                token, google_requests.Request(), current_app.config["GOOGLE_CLIENT_ID"]
            )
        except (ValueError, GoogleAuthError):
            return jsonify({"success": False, "data": None, "error": "Invalid or expired token", "message": None}), 401

        email = idinfo.get("email", "").lower()
        if email not in current_app.config["ALLOWED_EMAILS"]:
            return jsonify({"success": False, "data": None, "error": "Email not authorized", "message": None}), 403

        request.user_info = {
            "email": email,
            "name": idinfo.get("name", ""),
            "user_id": idinfo.get("sub", ""),
        }
        return f(*args, **kwargs)
    return decorated
