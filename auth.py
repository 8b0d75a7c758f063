from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from werkzeug.security import check_password_hash
from sqlalchemy import func
from models import User, db
from services.audit_service import AuditService
from timezone_utils import get_local_time_naive
import re
import logging

auth_bp = Blueprint('auth', __name__)

logger = logging.getLogger(__name__)

def validate_email(email):
    """Basic email validation"""
    if not email:
        return None, "Email is required"

    email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if re.match(email_pattern, email):
        return email.lower(), None
    else:
        return None, "Please enter a valid email address"

def serialize_user(user):
    return {
        'id': user.id,
        'email': user.email,
        'name': user.full_name,
        'role': user.role.value,
    }

@auth_bp.route('/login', methods=['POST'])
def login():
    """Start a session for a dashboard user"""
    data = request.get_json(silent=True) or {}

    email, error = validate_email((data.get('email') or '').strip())
    if error:
        return jsonify({'error': error}), 400

    password = data.get('password') or ''
    user = User.query.filter(func.lower(User.email) == email).first()

    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        # SECURITY: Generic message to prevent account enumeration
        logger.warning("Failed login attempt")
        return jsonify({'error': 'Invalid email or password'}), 401

    login_user(user)
    user.last_login = get_local_time_naive()
    AuditService.log_action('login', table_name='users', record_id=user.id, user_id=user.id)
    db.session.commit()

    logger.info(f"User {user.id} logged in")
    return jsonify({'success': True, 'user': serialize_user(user)})

@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    user_id = current_user.id
    logout_user()
    logger.info(f"User {user_id} logged out")
    return jsonify({'success': True})

@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'user': serialize_user(current_user)})
