from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import func, case
from marshmallow import Schema, fields, validate
from models import db, Tag, Task
from auth import get_current_user
from errors import ApiError, not_found
from helpers import validate_request_data, parse_bool_arg, isoformat
import logging
import random

tags_bp = Blueprint('tags', __name__)
logger = logging.getLogger(__name__)

TAG_COLOR = validate.Regexp(r'^#[0-9A-Fa-f]{6}$', error='Color must be a hex value like #FF6B6B')

# ============================================
# Input Validation Schemas
# ============================================

class CreateTagSchema(Schema):
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=50),
        error_messages={'required': 'Tag name is required'}
    )
    color = fields.Str(validate=TAG_COLOR)


class UpdateTagSchema(Schema):
    name = fields.Str(validate=validate.Length(min=1, max=50))
    color = fields.Str(validate=TAG_COLOR)

# ============================================
# 使用次數 (供 tasks 模組使用)
# ============================================

def increment_tag_usage(tags):
    """usage_count + 1, 用 SQL 運算式避免併發時的 lost update"""
    for tag in tags:
        tag.usage_count = Tag.usage_count + 1


def decrement_tag_usage(tags):
    """usage_count - 1, 不會小於 0"""
    for tag in tags:
        tag.usage_count = case((Tag.usage_count > 0, Tag.usage_count - 1), else_=0)


def random_tag_color():
    return random.choice(current_app.config['TAG_COLOR_PALETTE'])


def find_tag_by_name(name, exclude_id=None):
    """名稱比對不分大小寫"""
    query = Tag.query.filter(func.lower(Tag.name) == name.strip().lower())
    if exclude_id is not None:
        query = query.filter(Tag.id != exclude_id)
    return query.first()


def serialize_tag(tag, include_usage=True):
    data = {
        'id': tag.id,
        'name': tag.name,
        'color': tag.color,
        'created_at': isoformat(tag.created_at)
    }
    if include_usage:
        data['usage_count'] = tag.usage_count
    return data

# ============================================
# 查詢標籤
# ============================================

@tags_bp.route('', methods=['GET'])
@jwt_required()
def get_tags():
    """
    標籤列表

    search: 名稱部分比對 (不分大小寫), 有 search 時最多回傳 20 筆
    排序: usage_count 多的在前, 同次數依名稱
    """
    search = (request.args.get('search') or '').strip()
    include_usage = parse_bool_arg('include_usage_count', True)

    query = Tag.query
    if search:
        query = query.filter(Tag.name.ilike(f'%{search}%'))

    query = query.order_by(Tag.usage_count.desc(), Tag.name.asc())

    limit = request.args.get('limit', type=int)
    if search and not limit:
        limit = current_app.config['TAG_SEARCH_LIMIT']
    if limit:
        query = query.limit(max(1, min(limit, current_app.config['MAX_PAGE_SIZE'])))

    tags = query.all()
    return jsonify({'tags': [serialize_tag(t, include_usage) for t in tags]}), 200


@tags_bp.route('/popular', methods=['GET'])
@jwt_required()
def get_popular_tags():
    """至少被用過一次的標籤, 依使用次數排序"""
    limit = request.args.get('limit', current_app.config['TAG_POPULAR_LIMIT'], type=int)
    limit = max(1, min(limit, 50))

    tags = Tag.query.filter(Tag.usage_count > 0).order_by(
        Tag.usage_count.desc(), Tag.name.asc()
    ).limit(limit).all()

    return jsonify({'tags': [serialize_tag(t) for t in tags]}), 200


@tags_bp.route('/<int:tag_id>', methods=['GET'])
@jwt_required()
def get_tag(tag_id):
    """標籤詳情 (包含有使用這個標籤的任務)"""
    tag = db.session.get(Tag, tag_id)
    if not tag:
        raise not_found('Tag')

    tasks = Task.query.filter(Task.tags.any(Tag.id == tag_id)).order_by(Task.created_at.desc()).all()

    data = serialize_tag(tag)
    data['tasks'] = [{
        'id': t.id,
        'title': t.title,
        'status': t.status,
        'priority': t.priority
    } for t in tasks]
    return jsonify(data), 200

# ============================================
# 建立 / 更新 / 刪除
# ============================================

@tags_bp.route('', methods=['POST'])
@jwt_required()
def create_tag():
    """建立標籤, 沒給顏色時從調色盤隨機挑一個"""
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(CreateTagSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    name = result['name'].strip()
    if not name:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', {'name': ['Tag name is required']})

    if find_tag_by_name(name):
        raise ApiError(409, f'Tag "{name}" already exists', 'TAG_ALREADY_EXISTS')

    tag = Tag(name=name, color=result.get('color') or random_tag_color())
    db.session.add(tag)
    db.session.commit()

    logger.info(f"Tag created: {tag.name} by user {current_user.email}")
    return jsonify({'message': 'Tag created successfully', 'tag': serialize_tag(tag)}), 201


@tags_bp.route('/<int:tag_id>', methods=['PATCH'])
@jwt_required()
def update_tag(tag_id):
    current_user = get_current_user()

    tag = db.session.get(Tag, tag_id)
    if not tag:
        raise not_found('Tag')

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateTagSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    if 'name' in result:
        name = result['name'].strip()
        if not name:
            raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', {'name': ['Tag name is required']})
        if find_tag_by_name(name, exclude_id=tag_id):
            raise ApiError(409, f'Tag "{name}" already exists', 'TAG_ALREADY_EXISTS')
        tag.name = name
    if 'color' in result:
        tag.color = result['color']

    db.session.commit()

    logger.info(f"Tag {tag_id} updated by user {current_user.email}")
    return jsonify({'message': 'Tag updated successfully', 'tag': serialize_tag(tag)}), 200


@tags_bp.route('/<int:tag_id>', methods=['DELETE'])
@jwt_required()
def delete_tag(tag_id):
    """還有任務在用的標籤不能刪"""
    current_user = get_current_user()

    tag = db.session.get(Tag, tag_id)
    if not tag:
        raise not_found('Tag')

    in_use = Task.query.filter(Task.tags.any(Tag.id == tag_id)).count()
    if in_use:
        raise ApiError(409, f'Tag is used by {in_use} task(s) and cannot be deleted', 'TAG_IN_USE')

    tag_name = tag.name
    db.session.delete(tag)
    db.session.commit()

    logger.info(f"Tag deleted: {tag_name} by user {current_user.email}")
    return jsonify({'message': 'Tag deleted successfully'}), 200
