from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from passlib.hash import pbkdf2_sha256
from sqlalchemy import func
import logging

from extensions import limiter
from models import db, User
from routes.utils import log_action

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

TOKEN_SALT = 'ledgerdesk-api-token'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user):
    return _serializer().dumps({'uid': user.id})


def user_from_token(token):
    """Return the User a bearer token was issued for, or None if it is invalid or expired."""
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=current_app.config.get('TOKEN_MAX_AGE', 8 * 3600))
    except SignatureExpired:
        logger.info("Rejected expired API token")
        return None
    except BadSignature:
        return None
    try:
        uid = int(data.get('uid'))
    except (AttributeError, TypeError, ValueError):
        return None
    return db.session.get(User, uid)


def bearer_token(req):
    header = req.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer':
        return None
    return token.strip() or None


@auth_bp.route('/login', methods=['POST'])
@limiter.limit('10 per minute')
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not username or not password:
        return jsonify({'error': 'Username and password are required.'}), 400

    user = User.query.filter(func.lower(User.username) == username.lower()).first()
    if user is None or not pbkdf2_sha256.verify(password, user.password_hash):
        logger.warning("Failed login attempt for %r from %s", username, request.remote_addr)
        return jsonify({'error': 'Invalid username or password.'}), 401

    log_action(f'User {user.username} logged in.', user=user)
    db.session.commit()
    return jsonify({'token': issue_token(user), 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    # Tokens are stateless; the client drops its copy.
    log_action(f'User {current_user.username} logged out.')
    db.session.commit()
    return jsonify({'status': 'ok'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(current_user.to_dict())
