import hashlib
import secrets
from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db
from models import User
from utilities.constants import SESSION_COOKIE

TOKEN_SALT = 'prevue-auth'


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password_hash, password):
    return check_password_hash(password_hash, password or '')


def hash_reset_token(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def new_reset_token():
    """Return (raw token for the email link, hash to store)."""
    token = secrets.token_hex(32)
    return token, hash_reset_token(token)


def _serializer():
    settings = current_app.config['SETTINGS']
    return URLSafeTimedSerializer(settings.secret_key, salt=TOKEN_SALT)


def issue_token(user):
    return _serializer().dumps({'id': user.id, 'email': user.email})


def read_token(token):
    """Return the token payload, or None when missing, tampered or expired."""
    if not token:
        return None
    settings = current_app.config['SETTINGS']
    try:
        return _serializer().loads(token, max_age=settings.token_max_age)
    except (BadSignature, SignatureExpired):
        return None


def set_auth_cookie(response, user):
    settings = current_app.config['SETTINGS']
    response.set_cookie(
        SESSION_COOKIE, issue_token(user),
        max_age=settings.token_max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite='None' if settings.cookie_secure else 'Lax',
        path='/',
    )
    return response


def clear_auth_cookie(response):
    settings = current_app.config['SETTINGS']
    response.delete_cookie(
        SESSION_COOKIE, path='/', httponly=True,
        secure=settings.cookie_secure,
        samesite='None' if settings.cookie_secure else 'Lax',
    )
    return response


def login_required(view):
    """Reject requests without a valid auth cookie; exposes the user as ``g.user``."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        payload = read_token(request.cookies.get(SESSION_COOKIE))
        if not payload:
            return jsonify({'error': 'Authentication required'}), 401
        user = db.session.get(User, payload.get('id'))
        if user is None:
            return jsonify({'error': 'User not found'}), 401
        g.user = user
        return view(*args, **kwargs)
    return wrapped
