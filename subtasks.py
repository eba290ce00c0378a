from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import Schema, fields, validate
from models import db, Subtask, TaskHistory
from auth import get_current_user
from tasks import check_task_access, can_edit
from errors import ApiError, not_found, forbidden
from helpers import validate_request_data, isoformat
import logging

subtasks_bp = Blueprint('subtasks', __name__)
logger = logging.getLogger(__name__)


class CreateSubtaskSchema(Schema):
    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=200),
        error_messages={'required': 'Subtask title is required'}
    )


class UpdateSubtaskSchema(Schema):
    title = fields.Str(validate=validate.Length(min=1, max=200))
    completed = fields.Bool()


def serialize_subtask(subtask):
    return {
        'id': subtask.id,
        'task_id': subtask.task_id,
        'title': subtask.title,
        'completed': subtask.completed,
        'created_at': isoformat(subtask.created_at),
        'updated_at': isoformat(subtask.updated_at)
    }


def get_editable_subtask(subtask_id, user_id):
    """取得子項目並檢查父任務的編輯權限"""
    subtask = db.session.get(Subtask, subtask_id)
    if not subtask:
        raise not_found('Subtask')

    has_access, task, role = check_task_access(subtask.task_id, user_id)
    if not can_edit(role):
        raise forbidden()

    return subtask

# ============================================
# 子項目 API
# ============================================

@subtasks_bp.route('/tasks/<int:task_id>/subtasks', methods=['GET'])
@jwt_required()
def get_subtasks(task_id):
    """任務的子項目 (建立時間舊的在前)"""
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden()

    subtasks = Subtask.query.filter_by(task_id=task_id).order_by(
        Subtask.created_at.asc(), Subtask.id.asc()
    ).all()

    return jsonify({
        'subtasks': [serialize_subtask(s) for s in subtasks],
        'total': len(subtasks),
        'completed': sum(1 for s in subtasks if s.completed)
    }), 200


@subtasks_bp.route('/tasks/<int:task_id>/subtasks', methods=['POST'])
@jwt_required()
def create_subtask(task_id):
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not can_edit(role):
        raise forbidden()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(CreateSubtaskSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    subtask = Subtask(task_id=task_id, title=result['title'])
    db.session.add(subtask)
    db.session.flush()

    db.session.add(TaskHistory(
        task_id=task_id,
        user_id=current_user.id,
        action='subtask_added',
        changes={'subtask_id': subtask.id, 'title': subtask.title}
    ))
    db.session.commit()

    logger.info(f"Subtask added to task {task_id} by user {current_user.email}")
    return jsonify({
        'message': 'Subtask created successfully',
        'subtask': serialize_subtask(subtask)
    }), 201


@subtasks_bp.route('/subtasks/<int:subtask_id>', methods=['PATCH'])
@jwt_required()
def update_subtask(subtask_id):
    """更新子項目, 從未完成變成完成時記錄 history"""
    current_user = get_current_user()

    subtask = get_editable_subtask(subtask_id, current_user.id)

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateSubtaskSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    newly_completed = result.get('completed') is True and not subtask.completed

    for field, value in result.items():
        setattr(subtask, field, value)

    if newly_completed:
        db.session.add(TaskHistory(
            task_id=subtask.task_id,
            user_id=current_user.id,
            action='subtask_completed',
            changes={'subtask_id': subtask.id, 'title': subtask.title}
        ))

    db.session.commit()
    return jsonify({
        'message': 'Subtask updated successfully',
        'subtask': serialize_subtask(subtask)
    }), 200


@subtasks_bp.route('/subtasks/<int:subtask_id>', methods=['DELETE'])
@jwt_required()
def delete_subtask(subtask_id):
    current_user = get_current_user()

    subtask = get_editable_subtask(subtask_id, current_user.id)

    task_id = subtask.task_id
    db.session.delete(subtask)
    db.session.commit()

    logger.info(f"Subtask {subtask_id} removed from task {task_id} by user {current_user.email}")
    return jsonify({'message': 'Subtask deleted successfully'}), 200
