from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy import and_, or_
from marshmallow import Schema, fields, validate
from models import (
    db, Project, Task, Tag, User, ProjectMember, TaskComment, TaskHistory,
    TASK_STATUSES, TASK_PRIORITIES
)
from auth import get_current_user
from extensions import limiter
from projects import check_project_access, load_tags, MANAGE_ROLES
from tags import increment_tag_usage, decrement_tag_usage
from notifications import create_from_template
from errors import ApiError, not_found, forbidden
from helpers import (
    validate_request_data, get_pagination_args, pagination_meta, parse_csv_arg,
    parse_bool_arg, parse_datetime_arg, isoformat, user_summary
)
from datetime import datetime, timedelta, timezone
import logging
import re

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r'@([\w.\-]+)')
HOURS_RANGE = validate.Range(min=0, max=1000)

# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """建立任務驗證"""
    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=200),
        error_messages={'required': 'Task title is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES), load_default='todo')
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES), load_default='medium')
    project_id = fields.Int(allow_none=True)
    assignee_id = fields.Int(allow_none=True)
    parent_id = fields.Int(allow_none=True)
    due_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    estimated_hours = fields.Float(allow_none=True, validate=HOURS_RANGE)
    actual_hours = fields.Float(allow_none=True, validate=HOURS_RANGE)
    tag_ids = fields.List(fields.Int(), load_default=list)


class UpdateTaskSchema(Schema):
    """更新任務驗證"""
    title = fields.Str(validate=validate.Length(min=1, max=200))
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    project_id = fields.Int(allow_none=True)
    assignee_id = fields.Int(allow_none=True)
    parent_id = fields.Int(allow_none=True)
    due_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    estimated_hours = fields.Float(allow_none=True, validate=HOURS_RANGE)
    actual_hours = fields.Float(allow_none=True, validate=HOURS_RANGE)
    tag_ids = fields.List(fields.Int())


class TaskStatusSchema(Schema):
    status = fields.Str(required=True, validate=validate.OneOf(TASK_STATUSES))


class CreateCommentSchema(Schema):
    """評論驗證"""
    content = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=2000)
    )

UPDATABLE_FIELDS = [
    'title', 'description', 'status', 'priority', 'project_id', 'assignee_id',
    'parent_id', 'due_date', 'estimated_hours', 'actual_hours'
]

# ============================================
# 輔助函數
# ============================================

def check_task_access(task_id, user_id):
    """
    檢查使用者是否有權限訪問任務

    有專案的任務看專案角色; 沒有專案的任務只有建立者 (owner) 和負責人 (member) 看得到

    Returns:
        tuple: (has_access, task, role)
    """
    task = db.session.get(Task, task_id)
    if not task:
        return False, None, None

    if task.project_id:
        has_access, project, role = check_project_access(task.project_id, user_id)
        return has_access, task, role

    if task.created_by == user_id:
        return True, task, 'owner'
    if task.assignee_id == user_id:
        return True, task, 'member'
    return False, task, None


def can_edit(role):
    return role is not None and role != 'viewer'


def visible_tasks_query(user_id):
    """
    使用者看得到的任務, 規則和 check_task_access 一致

    有專案的任務只看成員身份 (離開專案後就看不到); 沒有專案的任務看建立者 / 負責人
    """
    member_project_ids = db.session.query(ProjectMember.project_id).filter(
        ProjectMember.user_id == user_id
    )
    owned_project_ids = db.session.query(Project.id).filter(Project.owner_id == user_id)
    return Task.query.filter(or_(
        Task.project_id.in_(member_project_ids),
        Task.project_id.in_(owned_project_ids),
        and_(
            Task.project_id.is_(None),
            or_(Task.created_by == user_id, Task.assignee_id == user_id)
        )
    ))


def to_json_value(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def record_history(task, user_id, action, changes=None):
    db.session.add(TaskHistory(task_id=task.id, user_id=user_id, action=action, changes=changes))


def validate_relations(result, current_user, task=None):
    """檢查 project / assignee / parent 的關聯, 不合法時丟 ApiError"""
    project_id = result.get('project_id', task.project_id if task else None)

    if result.get('project_id'):
        has_access, project, role = check_project_access(result['project_id'], current_user.id)
        if not project:
            raise not_found('Project')
        if not can_edit(role):
            raise forbidden('Permission denied for this project')

    if result.get('assignee_id'):
        assignee = db.session.get(User, result['assignee_id'])
        if not assignee:
            raise not_found('Assignee')
        if project_id:
            has_access, _, _ = check_project_access(project_id, assignee.id)
            if not has_access:
                raise ApiError(400, 'Assignee is not a member of this project', 'BAD_REQUEST')

    if result.get('parent_id'):
        if task and result['parent_id'] == task.id:
            raise ApiError(400, 'A task cannot be its own parent', 'BAD_REQUEST')
        has_access, parent, _ = check_task_access(result['parent_id'], current_user.id)
        if not parent:
            raise not_found('Parent task')
        if not has_access:
            raise forbidden('Permission denied for parent task')
        # 避免循環: 往上走 parent 鏈不能遇到自己
        ancestor = parent
        while task and ancestor is not None:
            if ancestor.id == task.id:
                raise ApiError(400, 'Parent assignment would create a cycle', 'BAD_REQUEST')
            ancestor = ancestor.parent


def notify_assignment(task, actor):
    if task.assignee_id and task.assignee_id != actor.id:
        create_from_template(
            task.assignee_id, 'task_assigned',
            {'actor': actor.username, 'task_title': task.title},
            action_url=f'/tasks/{task.id}',
            meta={'task_id': task.id, 'project_id': task.project_id}
        )


def notify_completion(task, actor):
    if task.created_by != actor.id:
        create_from_template(
            task.created_by, 'task_completed',
            {'actor': actor.username, 'task_title': task.title},
            action_url=f'/tasks/{task.id}',
            meta={'task_id': task.id, 'project_id': task.project_id}
        )


def apply_task_update(task, result, actor):
    """
    套用更新並記錄變更, 只 flush 不 commit

    1. 只記錄真的有變的欄位
    2. tag_ids 取代整組標籤, 移除的 -1、新增的 +1
    3. status 變 done / archived 時自動設定 completed_at / archived_at
    4. 依變更內容寫入 history 並通知相關人員
    """
    changes = {}
    old_status = task.status

    for field in UPDATABLE_FIELDS:
        if field in result:
            old_value = getattr(task, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {'old': to_json_value(old_value), 'new': to_json_value(new_value)}
                setattr(task, field, new_value)

    if 'tag_ids' in result:
        tags, missing = load_tags(result['tag_ids'])
        if tags is None:
            raise ApiError(400, 'Some tags do not exist', 'BAD_REQUEST', {'tag_ids': missing})

        current = {t.id: t for t in task.tags}
        wanted = {t.id: t for t in tags}
        removed = [tag for tag_id, tag in current.items() if tag_id not in wanted]
        added = [tag for tag_id, tag in wanted.items() if tag_id not in current]
        if removed or added:
            decrement_tag_usage(removed)
            increment_tag_usage(added)
            task.tags = tags
            changes['tag_ids'] = {'old': sorted(current), 'new': sorted(wanted)}

    if 'status' in changes:
        new_status = task.status
        if new_status == 'done' and old_status != 'done':
            task.completed_at = datetime.utcnow()
        elif new_status != 'done' and old_status == 'done':
            task.completed_at = None

        if new_status == 'archived':
            task.archived_at = datetime.utcnow()
        elif old_status == 'archived':
            task.archived_at = None

    if not changes:
        return changes

    task.updated_by = actor.id
    db.session.flush()

    # history: status / priority / assignee 各自一筆, 其他欄位合成一筆 updated
    if 'status' in changes:
        record_history(task, actor.id, 'status_changed', {'status': changes['status']})
    if 'priority' in changes:
        record_history(task, actor.id, 'priority_changed', {'priority': changes['priority']})
    if 'assignee_id' in changes:
        record_history(task, actor.id, 'assigned', {'assignee_id': changes['assignee_id']})
    other = {k: v for k, v in changes.items() if k not in ('status', 'priority', 'assignee_id')}
    if other:
        record_history(task, actor.id, 'updated', other)

    if 'status' in changes and task.status == 'done':
        notify_completion(task, actor)
    if 'assignee_id' in changes:
        notify_assignment(task, actor)

    return changes


def serialize_task(task, detail=False):
    completed_subtasks = sum(1 for s in task.subtasks if s.completed)
    data = {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'priority': task.priority,
        'project': {
            'id': task.project.id,
            'name': task.project.name,
            'color': task.project.color
        } if task.project else None,
        'assignee': user_summary(task.assignee),
        'creator': user_summary(task.creator),
        'parent_id': task.parent_id,
        'due_date': isoformat(task.due_date),
        'estimated_hours': task.estimated_hours,
        'actual_hours': task.actual_hours,
        'tags': [{'id': t.id, 'name': t.name, 'color': t.color} for t in task.tags],
        'subtask_count': len(task.subtasks),
        'completed_subtask_count': completed_subtasks,
        'completed_at': isoformat(task.completed_at),
        'archived_at': isoformat(task.archived_at),
        'created_at': isoformat(task.created_at),
        'updated_at': isoformat(task.updated_at)
    }
    if detail:
        data['subtasks'] = [{
            'id': s.id,
            'title': s.title,
            'completed': s.completed,
            'created_at': isoformat(s.created_at)
        } for s in task.subtasks]
        data['children'] = [{'id': c.id, 'title': c.title, 'status': c.status} for c in task.children]
        data['comment_count'] = len(task.comments)
    return data


def task_load_options():
    return (
        joinedload(Task.project),
        joinedload(Task.assignee),
        joinedload(Task.creator),
        selectinload(Task.tags),
        selectinload(Task.subtasks)
    )

# ============================================
# 查詢任務
# ============================================

def list_tasks(current_user, project_id=None):
    """
    任務列表 (共用)

    篩選: status[], priority[], project_id, assignee_id, tags[] (id 或名稱),
         parent_id, due_date_from / due_date_to, search, include_archived
    """
    query = visible_tasks_query(current_user.id).options(*task_load_options())

    statuses = parse_csv_arg('status')
    if statuses:
        query = query.filter(Task.status.in_(statuses))
    elif not parse_bool_arg('include_archived', False):
        query = query.filter(Task.status != 'archived')

    priorities = parse_csv_arg('priority')
    if priorities:
        query = query.filter(Task.priority.in_(priorities))

    project_id = project_id or request.args.get('project_id', type=int)
    if project_id:
        query = query.filter(Task.project_id == project_id)

    assignee = request.args.get('assignee_id')
    if assignee == 'me':
        query = query.filter(Task.assignee_id == current_user.id)
    elif assignee and assignee.isdigit():
        query = query.filter(Task.assignee_id == int(assignee))

    parent_id = request.args.get('parent_id', type=int)
    if parent_id:
        query = query.filter(Task.parent_id == parent_id)

    tag_filters = parse_csv_arg('tags')
    if tag_filters:
        tag_ids = [int(t) for t in tag_filters if t.isdigit()]
        tag_names = [t for t in tag_filters if not t.isdigit()]
        query = query.filter(Task.tags.any(or_(Tag.id.in_(tag_ids), Tag.name.in_(tag_names))))

    due_from = parse_datetime_arg('due_date_from')
    if due_from:
        query = query.filter(Task.due_date >= due_from)
    due_to = parse_datetime_arg('due_date_to')
    if due_to:
        query = query.filter(Task.due_date <= due_to)

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    sort_by = request.args.get('sort_by', 'created_at')
    order_column = {
        'due_date': Task.due_date,
        'priority': Task.priority,
        'title': Task.title,
        'updated_at': Task.updated_at
    }.get(sort_by, Task.created_at)

    if request.args.get('sort_order', 'desc') == 'asc':
        query = query.order_by(order_column.asc(), Task.id.asc())
    else:
        query = query.order_by(order_column.desc(), Task.id.desc())

    page, per_page = get_pagination_args(default_per_page=50)
    paginated = query.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'tasks': [serialize_task(t) for t in paginated.items],
        **pagination_meta(paginated, page, per_page)
    }), 200


@tasks_bp.route('/tasks', methods=['GET'])
@jwt_required()
def get_tasks():
    return list_tasks(get_current_user())


@tasks_bp.route('/projects/<int:project_id>/tasks', methods=['GET'])
@jwt_required()
def get_project_tasks(project_id):
    """專案的任務列表"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if not has_access:
        raise forbidden()

    return list_tasks(current_user, project_id=project_id)


@tasks_bp.route('/tasks/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task(task_id):
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden()

    data = serialize_task(task, detail=True)
    data['my_role'] = role
    return jsonify(data), 200

# ============================================
# 建立任務
# ============================================

def create_task_for(current_user, data, project_id=None):
    """
    建立任務 (單一 transaction)

    任務、標籤關聯、usage_count +1、history、指派通知一起 commit
    """
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(CreateTaskSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    if project_id is not None:
        result['project_id'] = project_id

    validate_relations(result, current_user)

    tags, missing = load_tags(result['tag_ids'])
    if tags is None:
        raise ApiError(400, 'Some tags do not exist', 'BAD_REQUEST', {'tag_ids': missing})

    task = Task(
        title=result['title'],
        description=result.get('description'),
        status=result['status'],
        priority=result['priority'],
        project_id=result.get('project_id'),
        assignee_id=result.get('assignee_id'),
        parent_id=result.get('parent_id'),
        due_date=result.get('due_date'),
        estimated_hours=result.get('estimated_hours'),
        actual_hours=result.get('actual_hours'),
        created_by=current_user.id,
        updated_by=current_user.id
    )
    if task.status == 'done':
        task.completed_at = datetime.utcnow()
    elif task.status == 'archived':
        task.archived_at = datetime.utcnow()

    task.tags = tags
    increment_tag_usage(tags)

    db.session.add(task)
    db.session.flush()

    record_history(task, current_user.id, 'created', {
        'title': task.title,
        'status': task.status,
        'priority': task.priority,
        'tag_ids': [t.id for t in tags]
    })
    notify_assignment(task, current_user)

    db.session.commit()
    logger.info(f"Task created: {task.title} (project {task.project_id}) by user {current_user.email}")

    return jsonify({
        'message': 'Task created successfully',
        'task': serialize_task(task)
    }), 201


@tasks_bp.route('/tasks', methods=['POST'])
@jwt_required()
@limiter.limit("100 per hour")
def create_task():
    return create_task_for(get_current_user(), request.get_json(silent=True))


@tasks_bp.route('/projects/<int:project_id>/tasks', methods=['POST'])
@jwt_required()
@limiter.limit("100 per hour")
def create_project_task(project_id):
    """在專案中建立任務"""
    return create_task_for(get_current_user(), request.get_json(silent=True), project_id=project_id)

# ============================================
# 更新 / 刪除
# ============================================

@tasks_bp.route('/tasks/<int:task_id>', methods=['PATCH'])
@jwt_required()
def update_task(task_id):
    """更新任務 (viewer 不能改)"""
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not can_edit(role):
        raise forbidden()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateTaskSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    validate_relations(result, current_user, task=task)

    changes = apply_task_update(task, result, current_user)
    if not changes:
        return jsonify({'message': 'No changes to update'}), 200

    db.session.commit()
    logger.info(f"Task {task_id} updated by user {current_user.email}: {list(changes)}")

    return jsonify({
        'message': 'Task updated successfully',
        'task': serialize_task(task),
        'changes': changes
    }), 200


@tasks_bp.route('/tasks/<int:task_id>/status', methods=['PATCH'])
@jwt_required()
def update_task_status(task_id):
    """只改狀態 (看板拖拉用)"""
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not can_edit(role):
        raise forbidden()

    is_valid, result = validate_request_data(TaskStatusSchema, request.get_json(silent=True) or {})
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    changes = apply_task_update(task, result, current_user)
    db.session.commit()

    return jsonify({
        'message': 'Task status updated' if changes else 'No changes to update',
        'task': serialize_task(task)
    }), 200


@tasks_bp.route('/tasks/<int:task_id>', methods=['DELETE'])
@jwt_required()
def delete_task(task_id):
    """
    刪除任務

    只有建立者或專案 owner / admin 能刪除;
    先把標籤 usage_count -1, 子項目 / 評論 / history 會 cascade 刪除
    """
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden()
    if task.created_by != current_user.id and role not in MANAGE_ROLES:
        raise forbidden('Only task creator or project admin can delete task')

    task_title = task.title
    decrement_tag_usage(task.tags)
    db.session.flush()

    db.session.delete(task)
    db.session.commit()

    logger.info(f"Task deleted: {task_title} by user {current_user.email}")
    return jsonify({'message': 'Task deleted successfully'}), 200

# ============================================
# 任務統計
# ============================================

@tasks_bp.route('/tasks/stats/summary', methods=['GET'])
@jwt_required()
def get_task_stats():
    """
    我看得到的任務統計

    completion_rate: done / 全部 (%)
    efficiency: 已完成任務的 預估工時 / 實際工時 (%)
    """
    current_user = get_current_user()
    base = visible_tasks_query(current_user.id)

    project_id = request.args.get('project_id', type=int)
    if project_id:
        base = base.filter(Task.project_id == project_id)

    tasks = base.all()
    now = datetime.utcnow()
    soon = now + timedelta(days=7)

    by_status = {s: 0 for s in TASK_STATUSES}
    by_priority = {p: 0 for p in TASK_PRIORITIES}
    overdue = due_soon = 0
    estimated_total = actual_total = 0.0
    done_estimated = done_actual = 0.0

    for task in tasks:
        by_status[task.status] = by_status.get(task.status, 0) + 1
        by_priority[task.priority] = by_priority.get(task.priority, 0) + 1
        open_task = task.status not in ('done', 'archived')
        if task.due_date and open_task:
            if task.due_date < now:
                overdue += 1
            elif task.due_date <= soon:
                due_soon += 1
        estimated_total += task.estimated_hours or 0
        actual_total += task.actual_hours or 0
        if task.status == 'done' and task.estimated_hours and task.actual_hours:
            done_estimated += task.estimated_hours
            done_actual += task.actual_hours

    total = len(tasks)
    return jsonify({
        'total': total,
        'by_status': by_status,
        'by_priority': by_priority,
        'overdue': overdue,
        'due_soon': due_soon,
        'total_estimated_hours': round(estimated_total, 1),
        'total_actual_hours': round(actual_total, 1),
        'completion_rate': round(by_status['done'] / total * 100, 1) if total else 0,
        'efficiency': round(done_estimated / done_actual * 100, 1) if done_actual else None
    }), 200

# ============================================
# 任務評論 / 歷史
# ============================================

@tasks_bp.route('/tasks/<int:task_id>/comments', methods=['POST'])
@jwt_required()
def create_task_comment(task_id):
    """
    新增任務評論

    @username 會通知被提到的使用者 (自己除外)
    """
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(CreateCommentSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    usernames = set(MENTION_PATTERN.findall(result['content']))
    mentioned = User.query.filter(User.username.in_(usernames)).all() if usernames else []
    mentioned = [u for u in mentioned if u.id != current_user.id]

    comment = TaskComment(
        task_id=task_id,
        user_id=current_user.id,
        content=result['content'],
        mentions=[u.id for u in mentioned]
    )
    db.session.add(comment)
    db.session.flush()

    record_history(task, current_user.id, 'comment_added', {'comment_id': comment.id})
    for user in mentioned:
        create_from_template(
            user.id, 'mention',
            {'actor': current_user.username, 'task_title': task.title},
            action_url=f'/tasks/{task_id}',
            meta={'task_id': task_id, 'comment_id': comment.id}
        )

    db.session.commit()
    logger.info(f"Comment added to task {task_id} by user {current_user.email}")

    return jsonify({
        'message': 'Comment added successfully',
        'comment': {
            'id': comment.id,
            'content': comment.content,
            'user': user_summary(current_user),
            'mentions': comment.mentions,
            'created_at': isoformat(comment.created_at)
        }
    }), 201


@tasks_bp.route('/tasks/<int:task_id>/comments', methods=['GET'])
@jwt_required()
def get_task_comments(task_id):
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden()

    comments = TaskComment.query.options(joinedload(TaskComment.user)).filter_by(
        task_id=task_id
    ).order_by(TaskComment.created_at.asc(), TaskComment.id.asc()).all()

    return jsonify({
        'comments': [{
            'id': c.id,
            'content': c.content,
            'user': user_summary(c.user),
            'mentions': c.mentions or [],
            'is_edited': c.is_edited,
            'created_at': isoformat(c.created_at)
        } for c in comments],
        'total': len(comments)
    }), 200


@tasks_bp.route('/tasks/<int:task_id>/history', methods=['GET'])
@jwt_required()
def get_task_history(task_id):
    current_user = get_current_user()

    has_access, task, role = check_task_access(task_id, current_user.id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden()

    entries = TaskHistory.query.options(joinedload(TaskHistory.user)).filter_by(
        task_id=task_id
    ).order_by(TaskHistory.created_at.desc(), TaskHistory.id.desc()).all()

    return jsonify({
        'history': [{
            'id': h.id,
            'action': h.action,
            'changes': h.changes,
            'user': user_summary(h.user),
            'created_at': isoformat(h.created_at)
        } for h in entries]
    }), 200
