from flask import request, current_app
from marshmallow import ValidationError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

# ============================================
# 共用輔助函數 (各 blueprint 共用)
# ============================================

def validate_request_data(schema_class, data, **schema_kwargs):
    """
    統一的輸入驗證函數

    Returns:
        tuple: (is_valid, data_or_errors)
    """
    schema = schema_class(**schema_kwargs)
    try:
        validated_data = schema.load(data)
        return True, validated_data
    except ValidationError as err:
        return False, err.messages


def get_pagination_args(default_per_page=None, max_per_page=None):
    """從 query string 讀取 page / per_page (也接受 limit)"""
    default_per_page = default_per_page or current_app.config['DEFAULT_PAGE_SIZE']
    max_per_page = max_per_page or current_app.config['MAX_PAGE_SIZE']

    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', type=int) or request.args.get('limit', type=int) or default_per_page

    page = max(page, 1)
    per_page = max(1, min(per_page, max_per_page))
    return page, per_page


def pagination_meta(paginated, page, per_page):
    return {
        'total': paginated.total,
        'page': page,
        'per_page': per_page,
        'total_pages': paginated.pages
    }


def parse_csv_arg(name):
    """'a,b,c' 或重複參數 ?x=a&x=b 都轉成 list"""
    values = []
    for raw in request.args.getlist(name):
        values.extend(v.strip() for v in raw.split(',') if v.strip())
    return values


def parse_bool_arg(name, default=None):
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.lower() in ('1', 'true', 'yes')


def parse_date(value):
    """'YYYY-MM-DD' -> date, 格式錯誤回傳 None"""
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        return None


def parse_datetime_arg(name):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


def isoformat(value):
    return value.isoformat() if value else None


def user_summary(user):
    if not user:
        return None
    return {
        'id': user.id,
        'username': user.username,
        'display_name': user.display_name,
        'avatar_url': user.avatar_url
    }
