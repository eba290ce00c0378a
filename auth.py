from flask import Blueprint, request, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token, jwt_required, get_jwt,
    get_current_user as get_jwt_user
)
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from marshmallow import Schema, fields, validate
from models import db, User, UserPreference, TokenBlocklist
from extensions import bcrypt, limiter
from errors import ApiError, forbidden
from helpers import validate_request_data, isoformat
from datetime import datetime
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

class RegisterSchema(Schema):
    """註冊輸入驗證"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Invalid email format'
    })
    password = fields.Str(
        required=True,
        validate=validate.Length(min=8, max=128, error='Password must be 8-128 characters'),
        error_messages={'required': 'Password is required'}
    )
    username = fields.Str(
        required=True,
        validate=validate.Length(min=2, max=50, error='Username must be 2-50 characters'),
        error_messages={'required': 'Username is required'}
    )
    display_name = fields.Str(validate=validate.Length(max=100))

class LoginSchema(Schema):
    """登入輸入驗證"""
    email = fields.Email(required=True)
    password = fields.Str(required=True)

class UpdateProfileSchema(Schema):
    """個人資料更新驗證"""
    username = fields.Str(validate=validate.Length(min=2, max=50))
    display_name = fields.Str(allow_none=True, validate=validate.Length(max=100))
    bio = fields.Str(allow_none=True, validate=validate.Length(max=500))
    phone = fields.Str(allow_none=True, validate=validate.Length(max=20))
    department = fields.Str(allow_none=True, validate=validate.Length(max=100))
    position = fields.Str(allow_none=True, validate=validate.Length(max=100))
    avatar_url = fields.Url(allow_none=True)

class ChangePasswordSchema(Schema):
    """密碼修改驗證"""
    current_password = fields.Str(required=True)
    new_password = fields.Str(
        required=True,
        validate=validate.Length(min=8, max=128)
    )

class PreferencesSchema(Schema):
    """使用者偏好設定驗證"""
    theme = fields.Str(validate=validate.OneOf(['light', 'dark', 'system']))
    language = fields.Str(validate=validate.Length(min=2, max=10))
    timezone = fields.Str(validate=validate.Length(min=1, max=50))
    date_format = fields.Str(validate=validate.Length(min=1, max=20))
    time_format = fields.Str(validate=validate.OneOf(['12h', '24h']))
    email_notifications = fields.Bool()
    push_notifications = fields.Bool()
    desktop_notifications = fields.Bool()

PROFILE_FIELDS = ['username', 'display_name', 'bio', 'phone', 'department', 'position', 'avatar_url']
PREFERENCE_FIELDS = [
    'theme', 'language', 'timezone', 'date_format', 'time_format',
    'email_notifications', 'push_notifications', 'desktop_notifications'
]

# ============================================
# 輔助函數 (供其他模組使用)
# ============================================

def get_current_user():
    """
    取得當前登入的使用者

    user_lookup_loader 已經確認過 token 對應到 active 使用者,
    所以在 @jwt_required() 的 route 裡不會是 None
    """
    return get_jwt_user()


def serialize_user(user, include_private=False):
    data = {
        'id': user.id,
        'email': user.email,
        'username': user.username,
        'display_name': user.display_name,
        'avatar_url': user.avatar_url,
        'department': user.department,
        'position': user.position,
        'role': user.role
    }
    if include_private:
        data.update({
            'bio': user.bio,
            'phone': user.phone,
            'status': user.status,
            'last_login': isoformat(user.last_login),
            'created_at': isoformat(user.created_at)
        })
    return data


def get_or_create_preferences(user):
    """偏好設定在第一次讀取時才建立"""
    if user.preference is None:
        user.preference = UserPreference(user_id=user.id)
        db.session.flush()
    return user.preference


def serialize_preferences(pref):
    return {field: getattr(pref, field) for field in PREFERENCE_FIELDS}

# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per hour")
def register():
    """
    使用者註冊

    改進點:
    1. input validation (marshmallow)
    2. 不洩漏敏感資訊
    3. 單一 transaction (使用者 + 預設偏好設定)
    """
    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(RegisterSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    email = result['email'].lower()
    if User.query.filter_by(email=email).first():
        raise ApiError(409, 'Email already exists', 'EMAIL_EXISTS')

    hashed_password = bcrypt.generate_password_hash(result['password']).decode('utf-8')

    user = User(
        email=email,
        username=result['username'],
        display_name=result.get('display_name') or result['username'],
        password_hash=hashed_password
    )

    try:
        db.session.add(user)
        db.session.flush()
        db.session.add(UserPreference(user_id=user.id))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error(f"Registration error for {email}", exc_info=True)
        raise

    logger.info(f"New user registered: {user.email}")

    return jsonify({
        'message': 'User registered successfully',
        'user': serialize_user(user)
    }), 201

# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """
    使用者登入

    改進點:
    1. 返回 refresh token (支援 token 刷新機制)
    2. 更新 last_login 時間
    3. 不區分 email/password 錯誤, 避免帳號枚舉攻擊
    """
    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(LoginSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    user = User.query.filter_by(email=result['email'].lower()).first()

    if not user or not bcrypt.check_password_hash(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for email: {result['email']}")
        raise ApiError(401, 'Invalid credentials', 'INVALID_CREDENTIALS')

    if not user.is_active:
        logger.warning(f"Inactive user login attempt: {user.email} ({user.status})")
        raise forbidden('Account is not active')

    access_token = create_access_token(identity=str(user.id))
    refresh_token = create_refresh_token(identity=str(user.id))

    try:
        user.last_login = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError as e:
        # 這個錯誤不影響登入, 只記錄就好
        db.session.rollback()
        logger.error(f"Failed to update last_login for {user.email}: {str(e)}")

    logger.info(f"User logged in: {user.email}")

    return jsonify({
        'message': 'Login successful',
        'access_token': access_token,
        'refresh_token': refresh_token,
        'user': serialize_user(user)
    }), 200

# ============================================
# Token 刷新 / 登出
# ============================================

@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """用 refresh token 換新的 access token"""
    user = get_current_user()
    access_token = create_access_token(identity=str(user.id))
    return jsonify({'access_token': access_token}), 200


@auth_bp.route('/logout', methods=['POST'])
@jwt_required(verify_type=False)
def logout():
    """
    登出

    把 token 的 jti 寫進 blocklist, 之後同一個 token 會被拒絕
    """
    token = get_jwt()
    user = get_current_user()

    db.session.add(TokenBlocklist(jti=token['jti'], token_type=token['type'], user_id=user.id))
    db.session.commit()

    logger.info(f"User logged out: {user.email}")
    return jsonify({'message': 'Logout successful'}), 200

# ============================================
# 當前使用者資訊
# ============================================

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    """取得當前登入使用者的資訊"""
    user = get_current_user()
    return jsonify(serialize_user(user, include_private=True)), 200


@auth_bp.route('/me', methods=['PATCH'])
@jwt_required()
def update_me():
    """更新當前使用者資料"""
    user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateProfileSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    for field in PROFILE_FIELDS:
        if field in result:
            setattr(user, field, result[field])

    db.session.commit()
    logger.info(f"User profile updated: {user.email}")

    return jsonify({
        'message': 'Profile updated successfully',
        'user': serialize_user(user, include_private=True)
    }), 200


@auth_bp.route('/change-password', methods=['POST'])
@jwt_required()
def change_password():
    """修改密碼"""
    user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(ChangePasswordSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    if not bcrypt.check_password_hash(user.password_hash, result['current_password']):
        raise ApiError(401, 'Current password is incorrect', 'INVALID_CREDENTIALS')

    user.password_hash = bcrypt.generate_password_hash(result['new_password']).decode('utf-8')
    db.session.commit()

    logger.info(f"Password changed for user: {user.email}")
    return jsonify({'message': 'Password changed successfully'}), 200

# ============================================
# 使用者搜尋 (加成員時用)
# ============================================

@auth_bp.route('/users', methods=['GET'])
@jwt_required()
def search_users():
    """依 username / email / display_name 搜尋 active 使用者"""
    search = (request.args.get('search') or '').strip()
    limit = min(request.args.get('limit', 20, type=int), 50)

    query = User.query.filter(User.status == 'active')
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            User.username.ilike(pattern),
            User.email.ilike(pattern),
            User.display_name.ilike(pattern)
        ))

    users = query.order_by(User.username.asc()).limit(limit).all()
    return jsonify({'users': [serialize_user(u) for u in users]}), 200

# ============================================
# 偏好設定
# ============================================

@auth_bp.route('/preferences', methods=['GET'])
@jwt_required()
def get_preferences():
    user = get_current_user()
    pref = get_or_create_preferences(user)
    db.session.commit()
    return jsonify({'preferences': serialize_preferences(pref)}), 200


@auth_bp.route('/preferences', methods=['PATCH'])
@jwt_required()
def update_preferences():
    user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(PreferencesSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    pref = get_or_create_preferences(user)
    for field, value in result.items():
        setattr(pref, field, value)
    db.session.commit()

    logger.info(f"Preferences updated for user: {user.email}")
    return jsonify({
        'message': 'Preferences updated successfully',
        'preferences': serialize_preferences(pref)
    }), 200
