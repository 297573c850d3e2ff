from flask import Blueprint, request, jsonify
from models import db, User
from passlib.hash import pbkdf2_sha256
from flask_login import login_required, current_user
from .decorators import role_required
from .utils import log_action
from sqlalchemy import func

user_bp = Blueprint('users', __name__, url_prefix='/api/users')

ROLES = ('Admin', 'Clerk', 'Viewer')


@user_bp.route('', methods=['GET'])
@login_required
@role_required('Admin')
def list_users():
    return jsonify([u.to_dict() for u in User.query.order_by(User.username).all()])


@user_bp.route('', methods=['POST'])
@login_required
@role_required('Admin')
def create_user():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    role = (data.get('role') or '').strip()

    if not username or not password or not role:
        return jsonify({'error': 'All fields are required.'}), 400
    if role not in ROLES:
        return jsonify({'error': f'Role must be one of {", ".join(ROLES)}.'}), 400
    if len(username) > 100 or len(password) > 200:
        return jsonify({'error': 'Username or password is too long.'}), 400
    if len(password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters.'}), 400

    existing = User.query.filter(func.lower(User.username) == username.lower()).first()
    if existing:
        return jsonify({'error': f'Username "{username}" already exists.'}), 409

    try:
        new_user = User(
            username=username,
            password_hash=pbkdf2_sha256.hash(password),
            role=role
        )
        db.session.add(new_user)
        log_action(f'Created new user: {username} with role: {role}.')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return jsonify({'error': f'Error creating user: {str(e)}'}), 500

    return jsonify(new_user.to_dict()), 201


@user_bp.route('/<int:user_id>', methods=['PUT'])
@login_required
@role_required('Admin')
def update_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({'error': 'User not found'}), 404
    data = request.get_json(silent=True) or {}
    new_password = data.get('password')
    role = (data.get('role') or '').strip()

    if not role:
        return jsonify({'error': 'Role is required.'}), 400
    if role not in ROLES:
        return jsonify({'error': f'Role must be one of {", ".join(ROLES)}.'}), 400
    if new_password and len(new_password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters.'}), 400

    try:
        user.role = role
        if new_password:
            user.password_hash = pbkdf2_sha256.hash(new_password)
        log_action(f'Updated user: {user.username}. Changed role to {role}.')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return jsonify({'error': f'Error updating user: {str(e)}'}), 500

    return jsonify(user.to_dict())


@user_bp.route('/<int:user_id>', methods=['DELETE'])
@login_required
@role_required('Admin')
def delete_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({'error': 'User not found'}), 404

    if user.id == current_user.id:
        return jsonify({'error': 'You cannot delete your own account.'}), 400

    if user.role and user.role.lower() == 'admin':
        admin_count = User.query.filter(func.lower(User.role) == 'admin').count()
        if admin_count <= 1:
            return jsonify({'error': 'Cannot delete the last admin account.'}), 400

    try:
        username = user.username
        db.session.delete(user)
        log_action(f'Deleted user: {username}.')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return jsonify({'error': f'Error deleting user: {str(e)}'}), 500

    return jsonify({'status': 'ok'})
