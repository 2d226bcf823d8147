from __future__ import annotations

import math

from flask import Blueprint, current_app, jsonify, request

from extensions import limiter
from utils.rate_limit import LoginAttemptLimiter
from utils.security import AuthError, decode_token, issue_token, verify_password

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def get_login_limiter() -> LoginAttemptLimiter:
    limiter_obj = current_app.extensions.get('login_attempts')
    if limiter_obj is None:
        cfg = current_app.config
        limiter_obj = LoginAttemptLimiter(
            max_attempts=cfg.get('LOGIN_MAX_ATTEMPTS', 5),
            lockout_seconds=cfg.get('LOGIN_LOCKOUT_SECONDS', 900),
            max_entries=cfg.get('LOGIN_ATTEMPTS_MAX_ENTRIES', 10000),
        )
        current_app.extensions['login_attempts'] = limiter_obj
    return limiter_obj


def _user_payload(email: str, role: str = 'admin') -> dict:
    return {"email": email, "name": "Admin", "role": role}


@auth_bp.route('/login', methods=['POST'])
@limiter.limit('10 per minute')
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({"ok": False, "error": "Email and password are required"}), 400

    attempts = get_login_limiter()
    key = attempts.make_key(request.remote_addr, email)
    locked = attempts.locked_for(key)
    if locked:
        minutes = max(1, math.ceil(locked / 60))
        return jsonify({"ok": False, "error": f"Too many failed attempts. Please try again in {minutes} minutes."}), 429

    cfg = current_app.config
    admin_email = (cfg.get('ADMIN_EMAIL') or '').strip()
    valid = (
        bool(admin_email)
        and email.lower() == admin_email.lower()
        and verify_password(cfg.get('ADMIN_PASSWORD_HASH') or '', password, cfg.get('PASSWORD_SALT') or '')
    )
    if valid:
        attempts.reset(key)
        token = issue_token(
            admin_email,
            cfg['JWT_SECRET'],
            expires_hours=cfg.get('JWT_EXPIRES_HOURS', 8),
            algorithm=cfg.get('JWT_ALGORITHM', 'HS256'),
        )
        current_app.logger.info("Admin login succeeded for %s", admin_email)
        return jsonify({"ok": True, "message": "Login successful", "token": token, "user": _user_payload(admin_email)})

    now_locked, remaining = attempts.record_failure(key)
    current_app.logger.warning("Failed admin login for %s from %s", email, request.remote_addr)
    if now_locked:
        minutes = max(1, math.ceil(attempts.lockout_seconds / 60))
        return jsonify({"ok": False, "error": f"Too many failed attempts. Account locked for {minutes} minutes."}), 429
    return jsonify({"ok": False, "error": f"Invalid email or password. {remaining} attempts remaining."}), 401


@auth_bp.route('/verify', methods=['POST'])
def verify():
    data = request.get_json(silent=True) or {}
    token = (data.get('token') or '').strip()
    if not token:
        return jsonify({"ok": False, "error": "Token is required"}), 400
    try:
        claims = decode_token(token, current_app.config['JWT_SECRET'], current_app.config.get('JWT_ALGORITHM', 'HS256'))
    except AuthError:
        return jsonify({"ok": False, "error": "Invalid or expired token"}), 401
    return jsonify({
        "ok": True,
        "message": "Token is valid",
        "user": _user_payload(claims.get('email'), claims.get('role') or 'admin'),
    })
