from functools import wraps
import logging
from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, current_user
from werkzeug.security import check_password_hash
from models import User, UserRole, db
from services.exceptions import PermissionDeniedError, ValidationError
from timezone_utils import get_local_time_naive

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def get_current_principal():
    """The authenticated actor as {id, role, operator_id, route_id}, or None"""
    if not current_user.is_authenticated:
        return None
    return {
        'id': current_user.id,
        'role': current_user.role,
        'operator_id': current_user.operator_id,
        'route_id': current_user.route_id,
    }


def is_super_admin():
    return current_user.is_authenticated and current_user.role == UserRole.SUPER_ADMIN


def get_route_filter():
    """
    Route scope for queries.

    Returns None when the principal may see every route (SUPER_ADMIN), the
    route id for a ROUTE_ADMIN with a route, and False when there is no
    route access at all.
    """
    if not current_user.is_authenticated:
        return False
    if current_user.role == UserRole.SUPER_ADMIN:
        return None
    if current_user.role == UserRole.ROUTE_ADMIN and current_user.route_id:
        return current_user.route_id
    return False


def get_operator_filter():
    """Operator scope: None for SUPER_ADMIN, else the principal's operator id (may be None)"""
    if is_super_admin():
        return None
    return current_user.operator_id


def api_login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'success': False, 'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Restrict an endpoint to the given roles (401 when anonymous, 403 otherwise)"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'error': 'Unauthorized'}), 401
            if current_user.role not in roles:
                raise PermissionDeniedError(
                    'Super Admin access required' if roles == (UserRole.SUPER_ADMIN,) else 'Access denied'
                )
            return f(*args, **kwargs)
        return decorated_function
    return decorator


@auth_bp.route('/login', methods=['POST'])
def login():
    """Email/password login, starts a session"""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        raise ValidationError('Email and password are required')

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        # Generic message to prevent account enumeration
        logger.warning(f"Failed login attempt for {email} from {request.remote_addr}")
        return jsonify({'success': False, 'error': 'Invalid email or password'}), 401

    login_user(user, remember=bool(data.get('remember')))
    user.last_login = get_local_time_naive()
    db.session.commit()

    logger.info(f"User {user.id} logged in as {user.role.value}")
    return jsonify({'success': True, 'data': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@api_login_required
def logout():
    logger.info(f"User {current_user.id} logged out")
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me')
@api_login_required
def me():
    return jsonify({'success': True, 'data': current_user.to_dict()})
