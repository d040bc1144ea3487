"""
blueprints/auth/routes.py - Authentication Blueprint
Handles staff login and logout for the grading API.
Sessions are Flask-Login's; passwords are bcrypt hashes.
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from extensions import bcrypt
from grading.scope import Role
from models import User

logger = logging.getLogger(__name__)

# Create blueprint
auth_bp = Blueprint('auth', __name__)


def _user_payload(user):
    role = Role.for_user_role(user.role, current_app.config['ADMINISTRATOR_ROLES'])
    return {
        'id': user.id,
        'email': user.email,
        'full_name': user.full_name,
        'role': user.role,
        'grading_role': role.value if role else None,
        'school_id': user.school_id,
    }


def _error(message, status_code):
    return jsonify({'success': False, 'error': {'title': 'Login Failed', 'message': message}}), status_code


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Teacher and administrator login
    Uses email for authentication
    """
    data = request.get_json(silent=True) or request.form
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    # Validate input
    if not email or not password:
        return _error('Please enter both email and password.', 400)

    user = User.query.filter_by(email=email).first()

    if user is None or not bcrypt.check_password_hash(user.password, password):
        logger.info('Failed login for %s', email)
        return _error('Invalid email or password.', 401)

    # Only staff with grading access
    if Role.for_user_role(user.role, current_app.config['ADMINISTRATOR_ROLES']) is None:
        return _error('This login is for teachers and school administrators only.', 403)

    login_user(user, remember=bool(data.get('remember')))
    logger.info('User %s (%s) logged in', user.id, user.role)
    return jsonify({'success': True, 'user': _user_payload(user)})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """
    Logout current user
    """
    logout_user()
    return jsonify({'success': True, 'message': 'You have been logged out successfully.'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'user': _user_payload(current_user)})
