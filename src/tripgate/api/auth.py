"""
Auth API Blueprint.

Routes:
- POST /api/auth/login   - Credential login, sets the session cookie
- GET  /api/auth/session - Current session (account, role, anti-forgery token)
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from ..login_service import login
from ..session_issuer import SESSION_COOKIE_NAME, resolve_session, session_lifetime

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/login', methods=['POST'])
def login_view():
    """Run the login pipeline for a JSON credential payload."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}

    result = login(payload, request.remote_addr)

    response = jsonify(result.body)
    response.status_code = result.status_code

    if result.retry_after is not None:
        response.headers['Retry-After'] = str(result.retry_after)

    if result.session is not None:
        response.set_cookie(
            SESSION_COOKIE_NAME,
            result.session.session_id,
            max_age=int(session_lifetime().total_seconds()),
            httponly=True,
            secure=current_app.config.get('SESSION_COOKIE_SECURE', False),
            samesite='Lax',
            path='/',
        )
    return response


@auth_bp.route('/session', methods=['GET'])
def session_view():
    """Describe the session bound to the cookie, or 401."""
    session = resolve_session(request.cookies.get(SESSION_COOKIE_NAME))
    if session is None:
        return jsonify({'ok': False, 'error': 'Not logged in.'}), 401

    return jsonify({
        'ok': True,
        'accountId': session.account_id,
        'role': session.account.role,
        'csrfToken': session.csrf_token,
    })
