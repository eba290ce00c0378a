from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import func, case, or_
from marshmallow import Schema, fields, validate
from models import (
    db, Notification, User, ProjectMember,
    NOTIFICATION_TYPES, NOTIFICATION_PRIORITIES
)
from auth import get_current_user, get_or_create_preferences
from errors import ApiError, not_found, forbidden
from helpers import (
    validate_request_data, get_pagination_args, pagination_meta, parse_csv_arg,
    parse_bool_arg, parse_datetime_arg, isoformat
)
from datetime import datetime, timedelta
import logging
import re

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)

TEMPLATE_VARIABLE = re.compile(r'\{\{\s*(\w+)\s*\}\}')

# 內建的通知範本, {{name}} 會被變數取代
NOTIFICATION_TEMPLATES = {
    'task_assigned': {
        'type': 'task_assigned',
        'priority': 'medium',
        'title': 'New task assigned',
        'message': '{{actor}} assigned "{{task_title}}" to you'
    },
    'task_completed': {
        'type': 'task_completed',
        'priority': 'low',
        'title': 'Task completed',
        'message': '{{actor}} completed "{{task_title}}"'
    },
    'task_deadline': {
        'type': 'task_deadline',
        'priority': 'high',
        'title': 'Task deadline approaching',
        'message': '"{{task_title}}" is due {{due_date}}'
    },
    'mention': {
        'type': 'mention',
        'priority': 'medium',
        'title': 'You were mentioned',
        'message': '{{actor}} mentioned you on "{{task_title}}"'
    },
    'project_update': {
        'type': 'project_update',
        'priority': 'low',
        'title': 'Project updated',
        'message': '{{actor}} updated project "{{project_name}}"'
    }
}

DEFAULT_NOTIFICATION_TYPES = {t: True for t in NOTIFICATION_TYPES}

SORT_COLUMNS = {
    'created_at': Notification.created_at,
    'type': Notification.type,
    'is_read': Notification.is_read,
    'title': Notification.title,
    'priority': case(
        (Notification.priority == 'high', 0),
        (Notification.priority == 'medium', 1),
        else_=2
    )
}

# ============================================
# Input Validation Schemas
# ============================================

class CreateNotificationSchema(Schema):
    type = fields.Str(required=True, validate=validate.OneOf(NOTIFICATION_TYPES))
    priority = fields.Str(validate=validate.OneOf(NOTIFICATION_PRIORITIES), load_default='medium')
    title = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    message = fields.Str(required=True, validate=validate.Length(min=1, max=2000))
    action_url = fields.Str(allow_none=True, validate=validate.Length(max=500))
    meta = fields.Dict(data_key='metadata', allow_none=True)


class SystemNotificationSchema(CreateNotificationSchema):
    type = fields.Str(validate=validate.OneOf(NOTIFICATION_TYPES), load_default='system')
    user_ids = fields.List(fields.Int(), required=True, validate=validate.Length(min=1, max=100))


class UpdateNotificationSchema(Schema):
    is_read = fields.Bool()
    priority = fields.Str(validate=validate.OneOf(NOTIFICATION_PRIORITIES))
    title = fields.Str(validate=validate.Length(min=1, max=255))
    message = fields.Str(validate=validate.Length(min=1, max=2000))


class NotificationIdsSchema(Schema):
    notification_ids = fields.List(fields.Int(), required=True, validate=validate.Length(min=1, max=100))


class ReadAllSchema(Schema):
    type = fields.Str(validate=validate.OneOf(NOTIFICATION_TYPES))


class CleanupSchema(Schema):
    days = fields.Int(validate=validate.Range(min=1, max=365))


class NotificationSettingsSchema(Schema):
    email_notifications = fields.Bool()
    push_notifications = fields.Bool()
    desktop_notifications = fields.Bool()
    notification_types = fields.Dict(keys=fields.Str(validate=validate.OneOf(NOTIFICATION_TYPES)),
                                     values=fields.Bool())

# ============================================
# 內部函數 (供其他模組使用)
# ============================================

def render_template_text(text, variables):
    """把 {{name}} 換成變數值, 沒有提供的變數保持原樣"""
    def replace(match):
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)
    return TEMPLATE_VARIABLE.sub(replace, text)


def create_notification(user_id, notification_type, title, message, priority='medium',
                        action_url=None, meta=None):
    """
    建立一筆通知 (只加進 session, 由呼叫端 commit)

    同一個 transaction 裡的業務操作失敗時通知也會一起 rollback
    """
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        priority=priority,
        title=title,
        message=message,
        action_url=action_url,
        meta=meta
    )
    db.session.add(notification)
    return notification


def create_from_template(user_id, template_key, variables, action_url=None, meta=None):
    """用內建範本建立通知"""
    template = NOTIFICATION_TEMPLATES[template_key]
    return create_notification(
        user_id,
        template['type'],
        render_template_text(template['title'], variables),
        render_template_text(template['message'], variables),
        priority=template['priority'],
        action_url=action_url,
        meta=meta
    )


def notify_project_members(project_id, template_key, variables, exclude_user_id=None,
                           action_url=None, meta=None):
    """為專案成員批量建立通知"""
    members = ProjectMember.query.filter_by(project_id=project_id).all()
    return [
        create_from_template(m.user_id, template_key, variables, action_url=action_url, meta=meta)
        for m in members
        if m.user_id != exclude_user_id
    ]


def serialize_notification(n):
    return {
        'id': n.id,
        'type': n.type,
        'priority': n.priority,
        'title': n.title,
        'message': n.message,
        'is_read': n.is_read,
        'action_url': n.action_url,
        'metadata': n.meta,
        'created_at': isoformat(n.created_at),
        'updated_at': isoformat(n.updated_at)
    }


def get_own_notification(notification_id, user_id):
    """只能拿到自己的通知, 別人的一律當作不存在"""
    return Notification.query.filter_by(id=notification_id, user_id=user_id).first()


def unread_count(user_id):
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()

# ============================================
# 1. 查詢通知
# ============================================

@notifications_bp.route('', methods=['GET'])
@jwt_required()
def get_notifications():
    """
    取得當前使用者的通知

    篩選: type[], priority[], is_read, date_from / date_to, search
    排序: sort_by (created_at, priority, type, is_read, title) + sort_order
    """
    current_user = get_current_user()
    query = Notification.query.filter_by(user_id=current_user.id)

    types = parse_csv_arg('type')
    if types:
        query = query.filter(Notification.type.in_(types))

    priorities = parse_csv_arg('priority')
    if priorities:
        query = query.filter(Notification.priority.in_(priorities))

    is_read = parse_bool_arg('is_read')
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(is_read))

    date_from = parse_datetime_arg('date_from')
    if date_from:
        query = query.filter(Notification.created_at >= date_from)
    date_to = parse_datetime_arg('date_to')
    if date_to:
        query = query.filter(Notification.created_at <= date_to)

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Notification.title.ilike(pattern), Notification.message.ilike(pattern)))

    sort_column = SORT_COLUMNS.get(request.args.get('sort_by', 'created_at'), Notification.created_at)
    if request.args.get('sort_order', 'desc') == 'asc':
        query = query.order_by(sort_column.asc(), Notification.id.asc())
    else:
        query = query.order_by(sort_column.desc(), Notification.id.desc())

    page, per_page = get_pagination_args(
        default_per_page=20,
        max_per_page=current_app.config['NOTIFICATION_MAX_PAGE_SIZE']
    )
    paginated = query.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'notifications': [serialize_notification(n) for n in paginated.items],
        'unread_count': unread_count(current_user.id),
        **pagination_meta(paginated, page, per_page)
    }), 200


@notifications_bp.route('/unread-count', methods=['GET'])
@jwt_required()
def get_unread_count():
    current_user = get_current_user()
    return jsonify({'unread_count': unread_count(current_user.id)}), 200


@notifications_bp.route('/recent-unread', methods=['GET'])
@jwt_required()
def get_recent_unread():
    """最近的未讀通知 (給 header 的下拉選單用)"""
    current_user = get_current_user()
    limit = max(1, min(request.args.get('limit', 5, type=int), 20))

    notifications = Notification.query.filter_by(
        user_id=current_user.id, is_read=False
    ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    return jsonify({'notifications': [serialize_notification(n) for n in notifications]}), 200


@notifications_bp.route('/stats', methods=['GET'])
@jwt_required()
def get_notification_stats():
    """取得通知統計資料"""
    current_user = get_current_user()
    user_id = current_user.id

    total = Notification.query.filter_by(user_id=user_id).count()
    unread = unread_count(user_id)

    type_stats = db.session.query(
        Notification.type, func.count(Notification.id)
    ).filter_by(user_id=user_id).group_by(Notification.type).all()

    priority_stats = db.session.query(
        Notification.priority, func.count(Notification.id)
    ).filter_by(user_id=user_id).group_by(Notification.priority).all()

    now = datetime.utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today_start - timedelta(days=now.weekday())

    today_count = Notification.query.filter(
        Notification.user_id == user_id,
        Notification.created_at >= today_start
    ).count()
    week_count = Notification.query.filter(
        Notification.user_id == user_id,
        Notification.created_at >= week_start
    ).count()

    return jsonify({
        'total': total,
        'unread': unread,
        'today': today_count,
        'this_week': week_count,
        'by_type': {t: count for t, count in type_stats},
        'by_priority': {p: count for p, count in priority_stats}
    }), 200

# ============================================
# 2. 通知設定
# ============================================

@notifications_bp.route('/settings', methods=['GET'])
@jwt_required()
def get_notification_settings():
    current_user = get_current_user()
    preference = get_or_create_preferences(current_user)
    db.session.commit()

    return jsonify({
        'email_notifications': preference.email_notifications,
        'push_notifications': preference.push_notifications,
        'desktop_notifications': preference.desktop_notifications,
        'notification_types': preference.notification_types or DEFAULT_NOTIFICATION_TYPES
    }), 200


@notifications_bp.route('/settings', methods=['PATCH'])
@jwt_required()
def update_notification_settings():
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(NotificationSettingsSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    preference = get_or_create_preferences(current_user)
    if 'notification_types' in result:
        merged = dict(preference.notification_types or DEFAULT_NOTIFICATION_TYPES)
        merged.update(result.pop('notification_types'))
        preference.notification_types = merged
    for field, value in result.items():
        setattr(preference, field, value)

    db.session.commit()
    return jsonify({'message': 'Notification settings updated'}), 200

# ============================================
# 3. 單筆通知
# ============================================

@notifications_bp.route('/<int:notification_id>', methods=['GET'])
@jwt_required()
def get_notification(notification_id):
    current_user = get_current_user()
    notification = get_own_notification(notification_id, current_user.id)
    if not notification:
        raise not_found('Notification')
    return jsonify({'notification': serialize_notification(notification)}), 200


@notifications_bp.route('', methods=['POST'])
@jwt_required()
def create_own_notification():
    """建立給自己的通知 (例如個人提醒)"""
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(CreateNotificationSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    notification = create_notification(
        current_user.id, result['type'], result['title'], result['message'],
        priority=result['priority'], action_url=result.get('action_url'), meta=result.get('meta')
    )
    db.session.commit()

    return jsonify({
        'message': 'Notification created',
        'notification': serialize_notification(notification)
    }), 201


@notifications_bp.route('/system', methods=['POST'])
@jwt_required()
def create_system_notifications():
    """系統通知 (只有 admin / manager), 發給指定的多個使用者"""
    current_user = get_current_user()
    if current_user.role not in ('admin', 'manager'):
        raise forbidden('Only administrators can send system notifications')

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(SystemNotificationSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    user_ids = set(result['user_ids'])
    existing = {uid for (uid,) in db.session.query(User.id).filter(User.id.in_(user_ids)).all()}
    missing = sorted(user_ids - existing)
    if missing:
        raise ApiError(400, 'Some users do not exist', 'BAD_REQUEST', {'user_ids': missing})

    for user_id in sorted(existing):
        create_notification(
            user_id, result['type'], result['title'], result['message'],
            priority=result['priority'], action_url=result.get('action_url'), meta=result.get('meta')
        )
    db.session.commit()

    logger.info(f"System notification sent to {len(existing)} users by {current_user.email}")
    return jsonify({'message': 'Notifications created', 'created_count': len(existing)}), 201


@notifications_bp.route('/<int:notification_id>', methods=['PATCH'])
@jwt_required()
def update_notification(notification_id):
    current_user = get_current_user()
    notification = get_own_notification(notification_id, current_user.id)
    if not notification:
        raise not_found('Notification')

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateNotificationSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    for field, value in result.items():
        setattr(notification, field, value)
    db.session.commit()

    return jsonify({
        'message': 'Notification updated',
        'notification': serialize_notification(notification)
    }), 200


@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@jwt_required()
def mark_notification_read(notification_id):
    """標記單個通知為已讀"""
    current_user = get_current_user()
    notification = get_own_notification(notification_id, current_user.id)
    if not notification:
        raise not_found('Notification')

    notification.is_read = True
    db.session.commit()
    return jsonify({'message': 'Notification marked as read'}), 200


@notifications_bp.route('/<int:notification_id>', methods=['DELETE'])
@jwt_required()
def delete_notification(notification_id):
    current_user = get_current_user()
    notification = get_own_notification(notification_id, current_user.id)
    if not notification:
        raise not_found('Notification')

    db.session.delete(notification)
    db.session.commit()
    return jsonify({'message': 'Notification deleted'}), 200

# ============================================
# 4. 批次操作
# ============================================

@notifications_bp.route('/bulk-read', methods=['POST'])
@jwt_required()
def bulk_mark_read():
    """批次標記已讀 (最多 100 筆, 只會動到自己的通知)"""
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(NotificationIdsSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    updated = Notification.query.filter(
        Notification.user_id == current_user.id,
        Notification.id.in_(result['notification_ids']),
        Notification.is_read.is_(False)
    ).update({'is_read': True}, synchronize_session=False)
    db.session.commit()

    return jsonify({'message': 'Notifications marked as read', 'updated_count': updated}), 200


@notifications_bp.route('/read-all', methods=['POST'])
@jwt_required()
def mark_all_notifications_read():
    """全部標記已讀, 可以只針對某個 type"""
    current_user = get_current_user()

    is_valid, result = validate_request_data(ReadAllSchema, request.get_json(silent=True) or {})
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    query = Notification.query.filter_by(user_id=current_user.id, is_read=False)
    if result.get('type'):
        query = query.filter_by(type=result['type'])

    updated = query.update({'is_read': True}, synchronize_session=False)
    db.session.commit()

    return jsonify({'message': 'All notifications marked as read', 'updated_count': updated}), 200


@notifications_bp.route('/bulk-delete', methods=['POST'])
@jwt_required()
def bulk_delete_notifications():
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(NotificationIdsSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    deleted = Notification.query.filter(
        Notification.user_id == current_user.id,
        Notification.id.in_(result['notification_ids'])
    ).delete(synchronize_session=False)
    db.session.commit()

    return jsonify({'message': 'Notifications deleted', 'deleted_count': deleted}), 200


@notifications_bp.route('/cleanup', methods=['POST'])
@jwt_required()
def cleanup_notifications():
    """刪除 N 天前 (預設 30 天) 且已讀的通知"""
    current_user = get_current_user()

    is_valid, result = validate_request_data(CleanupSchema, request.get_json(silent=True) or {})
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    days = result.get('days', current_app.config['NOTIFICATION_CLEANUP_DAYS'])
    cutoff = datetime.utcnow() - timedelta(days=days)

    deleted = Notification.query.filter(
        Notification.user_id == current_user.id,
        Notification.is_read.is_(True),
        Notification.created_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()

    logger.info(f"Cleaned up {deleted} notifications older than {days} days for {current_user.email}")
    return jsonify({'message': 'Old notifications cleaned up', 'deleted_count': deleted}), 200
