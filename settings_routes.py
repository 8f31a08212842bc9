import logging
from flask import Blueprint
from flask_login import current_user
from werkzeug.security import generate_password_hash, check_password_hash
from models import db, User, UserRole
from auth import api_login_required, roles_required
from services.exceptions import ValidationError
from services.settings_service import SettingsService
from utils.responses import success, json_body, commit_or_duplicate
from utils.validators import parse_int, parse_enum, require_fields, optional_text

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__)

settings_service = SettingsService()

MIN_PASSWORD_LENGTH = 6


@settings_bp.route('/settings', methods=['GET'])
@api_login_required
def get_settings():
    return success(settings_service.get_settings())


@settings_bp.route('/settings', methods=['POST'])
@api_login_required
def save_setting():
    data = json_body()
    setting = settings_service.save_setting(data.get('key'), data.get('value'), data.get('description'))
    return success(setting.to_dict())


@settings_bp.route('/settings', methods=['PUT'])
@api_login_required
def save_settings():
    data = json_body()
    saved = settings_service.save_settings(data.get('settings') or [])
    return success([s.to_dict() for s in saved])


@settings_bp.route('/calculate-shares', methods=['POST'])
@api_login_required
def calculate_shares():
    computation = settings_service.compute_daily_shares(json_body())
    return success(computation.to_dict())


# Users

@settings_bp.route('/users', methods=['GET'])
@roles_required(UserRole.SUPER_ADMIN)
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return success([u.to_dict() for u in users])


@settings_bp.route('/users', methods=['POST'])
@roles_required(UserRole.SUPER_ADMIN)
def create_user():
    data = json_body()
    require_fields(data, 'email', 'password', 'name', message='Email, password, and name are required')

    email = optional_text(data['email']).lower()
    if User.query.filter_by(email=email).first():
        raise ValidationError('Email already in use')

    user = User()
    user.email = email
    user.password_hash = generate_password_hash(data['password'])
    user.name = optional_text(data['name'])
    user.role = parse_enum(UserRole, data.get('role'), 'role') or UserRole.OPERATOR
    user.operator_id = parse_int(data.get('operatorId'), 'operatorId')
    user.route_id = parse_int(data.get('routeId'), 'routeId')
    user.active = True
    db.session.add(user)
    commit_or_duplicate('Email already in use')

    logger.info(f"User {user.email} ({user.role.value}) created by user {current_user.id}")
    return success(user.to_dict(), 201)


# Profile

@settings_bp.route('/profile', methods=['GET'])
@api_login_required
def get_profile():
    return success(current_user.to_dict())


@settings_bp.route('/profile', methods=['PUT'])
@api_login_required
def update_profile():
    data = json_body()
    user = db.session.get(User, current_user.id)
    changed = False

    name = optional_text(data.get('name'))
    if name:
        user.name = name
        changed = True

    new_password = data.get('newPassword')
    if new_password:
        current_password = data.get('currentPassword')
        if not current_password:
            raise ValidationError('Current password is required')
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f'New password must be at least {MIN_PASSWORD_LENGTH} characters')
        if not check_password_hash(user.password_hash, current_password):
            logger.warning(f"Failed password change for user {user.id}")
            raise ValidationError('Current password is incorrect')
        user.password_hash = generate_password_hash(new_password)
        changed = True

    if not changed:
        raise ValidationError('No changes provided')

    db.session.commit()
    return success(user.to_dict())
