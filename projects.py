from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy import func, case, or_
from marshmallow import Schema, fields, validate, validates_schema, ValidationError
from models import (
    db, Project, ProjectMember, User, Tag, Task,
    PROJECT_STATUSES, PROJECT_PRIORITIES
)
from auth import get_current_user
from notifications import create_notification
from errors import ApiError, not_found, forbidden
from helpers import (
    validate_request_data, get_pagination_args, pagination_meta, parse_csv_arg,
    parse_bool_arg, isoformat, user_summary
)
from datetime import datetime, timezone
import logging

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

HEX_COLOR = validate.Regexp(r'^#[0-9A-Fa-f]{6}$', error='Color must be a hex value like #3B82F6')
MANAGE_ROLES = ('owner', 'admin')
ASSIGNABLE_ROLES = ['admin', 'member', 'viewer']

# ============================================
# Input Validation Schemas
# ============================================

def check_date_order(data):
    """start_date <= end_date <= deadline"""
    start_date = data.get('start_date')
    end_date = data.get('end_date')
    deadline = data.get('deadline')

    errors = {}
    if start_date and end_date and start_date > end_date:
        errors['end_date'] = ['End date must be on or after start date']
    if end_date and deadline and end_date > deadline:
        errors['deadline'] = ['Deadline must be on or after end date']
    if start_date and deadline and start_date > deadline:
        errors.setdefault('deadline', []).append('Deadline must be on or after start date')
    return errors


class ProjectFieldsSchema(Schema):
    name = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES))
    priority = fields.Str(validate=validate.OneOf(PROJECT_PRIORITIES))
    color = fields.Str(validate=HEX_COLOR)
    icon = fields.Str(allow_none=True, validate=validate.Length(max=50))
    start_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    end_date = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    deadline = fields.NaiveDateTime(allow_none=True, timezone=timezone.utc)
    budget = fields.Float(allow_none=True, validate=validate.Range(min=0))
    tag_ids = fields.List(fields.Int())

    @validates_schema
    def validate_dates(self, data, **kwargs):
        errors = check_date_order(data)
        if errors:
            raise ValidationError(errors)


class CreateProjectSchema(ProjectFieldsSchema):
    """建立專案驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Project name is required'}
    )
    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES), load_default='planning')
    priority = fields.Str(validate=validate.OneOf(PROJECT_PRIORITIES), load_default='medium')
    color = fields.Str(validate=HEX_COLOR, load_default='#3B82F6')
    member_ids = fields.List(fields.Int())


class UpdateProjectSchema(ProjectFieldsSchema):
    """更新專案驗證"""
    is_archived = fields.Bool()


class BulkUpdateProjectSchema(Schema):
    """批次更新驗證"""
    project_ids = fields.List(fields.Int(), required=True, validate=validate.Length(min=1, max=100))
    updates = fields.Nested(Schema.from_dict({
        'status': fields.Str(validate=validate.OneOf(PROJECT_STATUSES)),
        'priority': fields.Str(validate=validate.OneOf(PROJECT_PRIORITIES)),
        'is_archived': fields.Bool()
    }), required=True)


class AddMemberSchema(Schema):
    user_id = fields.Int(required=True)
    role = fields.Str(validate=validate.OneOf(ASSIGNABLE_ROLES), load_default='member')


class UpdateMemberSchema(Schema):
    role = fields.Str(required=True, validate=validate.OneOf(ASSIGNABLE_ROLES))

# ============================================
# 輔助函數
# ============================================

def check_project_access(project_id, user_id):
    """
    檢查使用者是否有權限訪問專案

    Returns:
        tuple: (has_access: bool, project: Project|None, role: str|None)
    """
    project = db.session.get(Project, project_id)
    if not project:
        return False, None, None

    if project.owner_id == user_id:
        return True, project, 'owner'

    member = ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()
    if member:
        return True, project, member.role

    return False, project, None


def check_project_admin(project_id, user_id):
    """owner 或 admin 才算管理員"""
    has_access, project, role = check_project_access(project_id, user_id)
    return has_access and role in MANAGE_ROLES


def load_tags(tag_ids):
    """依 id 取得標籤, 有不存在的 id 回傳 (None, missing_ids)"""
    if not tag_ids:
        return [], []
    unique_ids = set(tag_ids)
    tags = Tag.query.filter(Tag.id.in_(unique_ids)).all()
    missing = sorted(unique_ids - {t.id for t in tags})
    if missing:
        return None, missing
    return tags, []


def project_counts(project_ids):
    """一次查出多個專案的任務數 / 完成數 / 成員數, 避免 N+1"""
    if not project_ids:
        return {}

    task_rows = db.session.query(
        Task.project_id,
        func.count(Task.id),
        func.sum(case((Task.status == 'done', 1), else_=0))
    ).filter(Task.project_id.in_(project_ids)).group_by(Task.project_id).all()

    member_rows = db.session.query(
        ProjectMember.project_id, func.count(ProjectMember.id)
    ).filter(ProjectMember.project_id.in_(project_ids)).group_by(ProjectMember.project_id).all()

    counts = {pid: {'task_count': 0, 'completed_task_count': 0, 'member_count': 0} for pid in project_ids}
    for pid, total, done in task_rows:
        counts[pid]['task_count'] = total
        counts[pid]['completed_task_count'] = int(done or 0)
    for pid, total in member_rows:
        counts[pid]['member_count'] = total
    return counts


def serialize_project(project, role=None, counts=None):
    data = {
        'id': project.id,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'priority': project.priority,
        'color': project.color,
        'icon': project.icon,
        'owner': user_summary(project.owner),
        'start_date': isoformat(project.start_date),
        'end_date': isoformat(project.end_date),
        'deadline': isoformat(project.deadline),
        'budget': project.budget,
        'is_archived': project.is_archived,
        'tags': [{'id': t.id, 'name': t.name, 'color': t.color} for t in project.tags],
        'created_at': isoformat(project.created_at),
        'updated_at': isoformat(project.updated_at)
    }
    if role is not None:
        data['my_role'] = role
    if counts is not None:
        data.update(counts)
    return data


def serialize_member(member):
    return {
        'user_id': member.user_id,
        'username': member.user.username,
        'display_name': member.user.display_name,
        'email': member.user.email,
        'role': member.role,
        'joined_at': isoformat(member.joined_at)
    }

# ============================================
# 建立專案
# ============================================

@projects_bp.route('', methods=['POST'])
@jwt_required()
def create_project():
    """
    建立專案

    建立者自動成為 owner 成員, 可以順便帶 tag_ids / member_ids
    """
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(CreateProjectSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    tags, missing = load_tags(result.get('tag_ids'))
    if tags is None:
        raise ApiError(400, 'Some tags do not exist', 'BAD_REQUEST', {'tag_ids': missing})

    member_ids = set(result.get('member_ids') or []) - {current_user.id}
    members = User.query.filter(User.id.in_(member_ids)).all() if member_ids else []
    if len(members) != len(member_ids):
        raise ApiError(400, 'Some users do not exist', 'BAD_REQUEST')

    project = Project(
        name=result['name'],
        description=result.get('description'),
        status=result['status'],
        priority=result['priority'],
        color=result['color'],
        icon=result.get('icon'),
        start_date=result.get('start_date'),
        end_date=result.get('end_date'),
        deadline=result.get('deadline'),
        budget=result.get('budget'),
        owner_id=current_user.id,
        created_by=current_user.id,
        updated_by=current_user.id
    )
    project.tags = tags

    db.session.add(project)
    db.session.flush()

    db.session.add(ProjectMember(project_id=project.id, user_id=current_user.id, role='owner'))
    for user in members:
        db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role='member'))
        create_notification(
            user.id, 'project_update',
            title='Added to project',
            message=f'{current_user.username} added you to project "{project.name}"',
            action_url=f'/projects/{project.id}',
            meta={'project_id': project.id}
        )

    db.session.commit()
    logger.info(f"Project created: {project.name} by user {current_user.email}")

    return jsonify({
        'message': 'Project created successfully',
        'project': serialize_project(project, 'owner', project_counts([project.id])[project.id])
    }), 201

# ============================================
# 查詢專案列表
# ============================================

@projects_bp.route('', methods=['GET'])
@jwt_required()
def get_my_projects():
    """
    查詢我參與的專案

    篩選: status, priority, search, include_archived; 分頁
    """
    current_user = get_current_user()

    member_project_ids = db.session.query(ProjectMember.project_id).filter(
        ProjectMember.user_id == current_user.id
    )
    query = Project.query.options(
        joinedload(Project.owner),
        selectinload(Project.tags)
    ).filter(or_(
        Project.owner_id == current_user.id,
        Project.id.in_(member_project_ids)
    ))

    statuses = parse_csv_arg('status')
    if statuses:
        query = query.filter(Project.status.in_(statuses))

    priorities = parse_csv_arg('priority')
    if priorities:
        query = query.filter(Project.priority.in_(priorities))

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(Project.name.ilike(pattern), Project.description.ilike(pattern)))

    if not parse_bool_arg('include_archived', False):
        query = query.filter(Project.is_archived.is_(False))

    page, per_page = get_pagination_args()
    paginated = query.order_by(Project.updated_at.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )

    ids = [p.id for p in paginated.items]
    counts = project_counts(ids)
    roles = dict(db.session.query(ProjectMember.project_id, ProjectMember.role).filter(
        ProjectMember.user_id == current_user.id,
        ProjectMember.project_id.in_(ids)
    ).all()) if ids else {}

    projects = [
        serialize_project(
            p,
            'owner' if p.owner_id == current_user.id else roles.get(p.id),
            counts[p.id]
        ) for p in paginated.items
    ]

    return jsonify({'projects': projects, **pagination_meta(paginated, page, per_page)}), 200

# ============================================
# 專案詳情 / 更新 / 刪除
# ============================================

@projects_bp.route('/<int:project_id>', methods=['GET'])
@jwt_required()
def get_project(project_id):
    """專案詳情 (成員、標籤、最近的任務)"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if not has_access:
        raise forbidden()

    members = ProjectMember.query.options(joinedload(ProjectMember.user)).filter_by(
        project_id=project_id
    ).order_by(ProjectMember.joined_at.asc()).all()

    page, per_page = get_pagination_args(default_per_page=20)
    tasks = Task.query.filter_by(project_id=project_id).order_by(
        Task.created_at.desc()
    ).paginate(page=page, per_page=per_page, error_out=False)

    data = serialize_project(project, role, project_counts([project_id])[project_id])
    data['members'] = [serialize_member(m) for m in members]
    data['tasks'] = [{
        'id': t.id,
        'title': t.title,
        'status': t.status,
        'priority': t.priority,
        'assignee': user_summary(t.assignee),
        'due_date': isoformat(t.due_date)
    } for t in tasks.items]
    data['tasks_pagination'] = pagination_meta(tasks, page, per_page)

    return jsonify(data), 200


@projects_bp.route('/<int:project_id>', methods=['PATCH'])
@jwt_required()
def update_project(project_id):
    """
    更新專案 (owner / admin)

    日期順序以「更新後」的值檢查
    """
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if role not in MANAGE_ROLES:
        raise forbidden('Only project owner or admin can update project')

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateProjectSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    merged = {
        field: result.get(field, getattr(project, field))
        for field in ('start_date', 'end_date', 'deadline')
    }
    date_errors = check_date_order(merged)
    if date_errors:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', date_errors)

    changes = {}
    for field in ['name', 'description', 'status', 'priority', 'color', 'icon',
                  'start_date', 'end_date', 'deadline', 'budget', 'is_archived']:
        if field in result:
            old_value = getattr(project, field)
            if old_value != result[field]:
                changes[field] = {'old': str(old_value), 'new': str(result[field])}
                setattr(project, field, result[field])

    if 'tag_ids' in result:
        tags, missing = load_tags(result['tag_ids'])
        if tags is None:
            raise ApiError(400, 'Some tags do not exist', 'BAD_REQUEST', {'tag_ids': missing})
        old_ids = sorted(t.id for t in project.tags)
        new_ids = sorted(t.id for t in tags)
        if old_ids != new_ids:
            changes['tag_ids'] = {'old': old_ids, 'new': new_ids}
            project.tags = tags

    if not changes:
        return jsonify({'message': 'No changes to update'}), 200

    project.updated_by = current_user.id
    db.session.commit()

    logger.info(f"Project {project_id} updated by user {current_user.email}: {list(changes)}")

    return jsonify({
        'message': 'Project updated successfully',
        'project': serialize_project(project, role),
        'changes': changes
    }), 200


@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@jwt_required()
def delete_project(project_id):
    """刪除專案 (只有 owner), 任務保留但不再屬於任何專案"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if role != 'owner':
        raise forbidden('Only project owner can delete project')

    project_name = project.name
    db.session.delete(project)
    db.session.commit()

    logger.info(f"Project deleted: {project_name} by user {current_user.email}")
    return jsonify({'message': 'Project deleted successfully'}), 200


@projects_bp.route('/bulk', methods=['PATCH'])
@jwt_required()
def bulk_update_projects():
    """批次更新 status / priority / is_archived, 每個專案都必須是 owner / admin"""
    current_user = get_current_user()

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(BulkUpdateProjectSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    updates = result['updates']
    if not updates:
        raise ApiError(400, 'No fields to update', 'BAD_REQUEST')

    project_ids = set(result['project_ids'])
    projects = Project.query.filter(Project.id.in_(project_ids)).all()
    missing = sorted(project_ids - {p.id for p in projects})
    if missing:
        raise ApiError(404, 'Some projects were not found', 'NOT_FOUND', {'project_ids': missing})

    denied = [p.id for p in projects if not check_project_admin(p.id, current_user.id)]
    if denied:
        raise ApiError(403, 'Permission denied', 'FORBIDDEN', {'project_ids': sorted(denied)})

    for project in projects:
        for field, value in updates.items():
            setattr(project, field, value)
        project.updated_by = current_user.id

    db.session.commit()
    logger.info(f"Bulk updated {len(projects)} projects by user {current_user.email}")

    return jsonify({
        'message': 'Projects updated successfully',
        'updated_count': len(projects)
    }), 200

# ============================================
# 專案成員
# ============================================

@projects_bp.route('/<int:project_id>/members', methods=['GET'])
@jwt_required()
def get_project_members(project_id):
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if not has_access:
        raise forbidden()

    members = ProjectMember.query.options(joinedload(ProjectMember.user)).filter_by(
        project_id=project_id
    ).order_by(ProjectMember.joined_at.asc()).all()

    return jsonify({'members': [serialize_member(m) for m in members]}), 200


@projects_bp.route('/<int:project_id>/members', methods=['POST'])
@jwt_required()
def add_project_member(project_id):
    """新增成員 (owner / admin), 並通知被加入的人"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if role not in MANAGE_ROLES:
        raise forbidden('Only project owner or admin can add members')

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(AddMemberSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    user = db.session.get(User, result['user_id'])
    if not user:
        raise not_found('User')

    if ProjectMember.query.filter_by(project_id=project_id, user_id=user.id).first():
        raise ApiError(409, 'User is already a member of this project', 'ALREADY_MEMBER')

    member = ProjectMember(project_id=project_id, user_id=user.id, role=result['role'])
    db.session.add(member)
    create_notification(
        user.id, 'project_update',
        title='Added to project',
        message=f'{current_user.username} added you to project "{project.name}"',
        action_url=f'/projects/{project_id}',
        meta={'project_id': project_id, 'role': result['role']}
    )
    db.session.commit()

    logger.info(f"User {user.email} added to project {project_id} as {member.role}")

    return jsonify({
        'message': 'Member added successfully',
        'member': serialize_member(member)
    }), 201


@projects_bp.route('/<int:project_id>/members/<int:user_id>', methods=['PATCH'])
@jwt_required()
def update_project_member(project_id, user_id):
    """修改成員角色 (owner 的角色不能改)"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if role not in MANAGE_ROLES:
        raise forbidden('Only project owner or admin can change member roles')

    member = ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()
    if not member:
        raise not_found('Member')
    if member.role == 'owner' or user_id == project.owner_id:
        raise ApiError(400, 'Cannot change the role of the project owner', 'BAD_REQUEST')

    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')

    is_valid, result = validate_request_data(UpdateMemberSchema, data)
    if not is_valid:
        raise ApiError(400, 'Validation failed', 'VALIDATION_ERROR', result)

    member.role = result['role']
    db.session.commit()

    logger.info(f"Member {user_id} role changed to {member.role} in project {project_id}")
    return jsonify({'message': 'Member updated successfully', 'member': serialize_member(member)}), 200


@projects_bp.route('/<int:project_id>/members/<int:user_id>', methods=['DELETE'])
@jwt_required()
def remove_project_member(project_id, user_id):
    """移除成員 (owner / admin, 或自己退出); owner 不能被移除"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if role not in MANAGE_ROLES and user_id != current_user.id:
        raise forbidden('Only project owner or admin can remove members')

    member = ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()
    if not member:
        raise not_found('Member')
    if member.role == 'owner' or user_id == project.owner_id:
        raise ApiError(400, 'Cannot remove the project owner', 'BAD_REQUEST')

    db.session.delete(member)
    db.session.commit()

    logger.info(f"Member {user_id} removed from project {project_id} by {current_user.email}")
    return jsonify({'message': 'Member removed successfully'}), 200

# ============================================
# 專案統計
# ============================================

@projects_bp.route('/<int:project_id>/stats', methods=['GET'])
@jwt_required()
def get_project_stats(project_id):
    """任務狀態分布、逾期數、完成率、工時"""
    current_user = get_current_user()

    has_access, project, role = check_project_access(project_id, current_user.id)
    if not project:
        raise not_found('Project')
    if not has_access:
        raise forbidden()

    status_rows = db.session.query(Task.status, func.count(Task.id)).filter(
        Task.project_id == project_id
    ).group_by(Task.status).all()
    by_status = {status: 0 for status in ('todo', 'in_progress', 'done', 'archived')}
    by_status.update(dict(status_rows))

    total = sum(by_status.values())
    overdue = Task.query.filter(
        Task.project_id == project_id,
        Task.due_date < datetime.utcnow(),
        Task.status.notin_(['done', 'archived'])
    ).count()

    estimated, actual = db.session.query(
        func.coalesce(func.sum(Task.estimated_hours), 0),
        func.coalesce(func.sum(Task.actual_hours), 0)
    ).filter(Task.project_id == project_id).one()

    member_count = ProjectMember.query.filter_by(project_id=project_id).count()

    return jsonify({
        'project_id': project_id,
        'total_tasks': total,
        'by_status': by_status,
        'overdue_tasks': overdue,
        'member_count': member_count,
        'completion_rate': round(by_status['done'] / total * 100, 1) if total else 0,
        'estimated_hours': float(estimated),
        'actual_hours': float(actual)
    }), 200
