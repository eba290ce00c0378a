from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

# ============================================
# 列舉值 (以字串欄位儲存)
# ============================================

USER_STATUSES = ['active', 'inactive', 'suspended', 'pending']
USER_ROLES = ['admin', 'manager', 'member', 'guest']

PROJECT_STATUSES = ['planning', 'active', 'on_hold', 'completed', 'cancelled']
PROJECT_PRIORITIES = ['low', 'medium', 'high', 'critical']
PROJECT_ROLES = ['owner', 'admin', 'member', 'viewer']

TASK_STATUSES = ['todo', 'in_progress', 'done', 'archived']
TASK_PRIORITIES = ['low', 'medium', 'high', 'urgent', 'critical']
TASK_ACTIONS = [
    'created', 'updated', 'status_changed', 'priority_changed', 'assigned',
    'comment_added', 'subtask_added', 'subtask_completed'
]

SCHEDULE_ITEM_TYPES = ['task', 'subtask', 'meeting', 'break', 'personal', 'blocked', 'focus', 'review']
SCHEDULE_ITEM_STATUSES = ['planned', 'in_progress', 'completed', 'postponed', 'cancelled']

NOTIFICATION_TYPES = [
    'task_deadline', 'task_assigned', 'task_completed', 'mention', 'project_update', 'system'
]
NOTIFICATION_PRIORITIES = ['high', 'medium', 'low']

# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(100), nullable=False, index=True)
    display_name = db.Column(db.String(100))

    # 個人資料
    avatar_url = db.Column(db.String(500))
    bio = db.Column(db.Text)
    phone = db.Column(db.String(20))
    department = db.Column(db.String(100))
    position = db.Column(db.String(100))

    status = db.Column(db.String(20), nullable=False, default='active')
    role = db.Column(db.String(20), nullable=False, default='member')
    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯
    owned_projects = db.relationship('Project', foreign_keys='Project.owner_id', backref='owner', lazy=True)
    tasks_assigned = db.relationship('Task', foreign_keys='Task.assignee_id', backref='assignee', lazy=True)
    tasks_created = db.relationship('Task', foreign_keys='Task.created_by', backref='creator', lazy=True)
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade='all,delete-orphan')
    daily_schedules = db.relationship('DailySchedule', backref='user', lazy=True)

    @property
    def is_active(self):
        return self.status == 'active'

# ============================================
# 2. UserPreference 模型
# ============================================
class UserPreference(db.Model):
    __tablename__ = 'user_preferences'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)

    # UI 設定
    theme = db.Column(db.String(20), default='system')  # light, dark, system
    language = db.Column(db.String(10), default='ja')
    timezone = db.Column(db.String(50), default='Asia/Tokyo')
    date_format = db.Column(db.String(20), default='YYYY-MM-DD')
    time_format = db.Column(db.String(5), default='24h')  # 12h, 24h

    # 通知設定
    email_notifications = db.Column(db.Boolean, default=True)
    push_notifications = db.Column(db.Boolean, default=True)
    desktop_notifications = db.Column(db.Boolean, default=False)
    notification_types = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('preference', uselist=False, cascade='all,delete-orphan'))

# ============================================
# 3. 多對多關聯表：專案 / 任務與標籤
# ============================================
project_tags = db.Table('project_tags',
    db.Column('project_id', db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
    db.Column('tag_id', db.Integer, db.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    db.Column('created_at', db.DateTime, default=datetime.utcnow)
)

task_tags = db.Table('task_tags',
    db.Column('task_id', db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), primary_key=True),
    db.Column('tag_id', db.Integer, db.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    db.Column('created_at', db.DateTime, default=datetime.utcnow)
)

# ============================================
# 4. Project 模型
# ============================================
class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='planning')
    priority = db.Column(db.String(20), nullable=False, default='medium')
    color = db.Column(db.String(7), default='#3B82F6')
    icon = db.Column(db.String(50))

    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    deadline = db.Column(db.DateTime)
    budget = db.Column(db.Float)
    is_archived = db.Column(db.Boolean, default=False, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯 (刪除專案時任務保留, project_id 設為 NULL)
    tasks = db.relationship('Task', backref='project', lazy=True)
    members = db.relationship('ProjectMember', backref='project', lazy=True, cascade='all,delete-orphan')
    tags = db.relationship('Tag', secondary=project_tags, backref='projects')

    __table_args__ = (
        db.Index('idx_project_status', 'status'),
        db.Index('idx_project_owner', 'owner_id'),
    )

# ============================================
# 5. ProjectMember 模型
# ============================================
class ProjectMember(db.Model):
    __tablename__ = 'project_members'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='member')  # owner, admin, member, viewer
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref='project_memberships')

    __table_args__ = (
        db.UniqueConstraint('project_id', 'user_id', name='unique_project_member'),
    )

# ============================================
# 6. Tag 模型 (全域唯一名稱)
# ============================================
class Tag(db.Model):
    __tablename__ = 'tags'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    color = db.Column(db.String(7), nullable=False, default='#3B82F6')
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

# ============================================
# 7. Task 模型
# ============================================
class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='todo')
    priority = db.Column(db.String(20), nullable=False, default='medium')

    estimated_hours = db.Column(db.Float)
    actual_hours = db.Column(db.Float)

    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='SET NULL'), nullable=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='SET NULL'), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 關聯
    tags = db.relationship('Tag', secondary=task_tags, backref='tasks')
    subtasks = db.relationship('Subtask', backref='task', lazy=True, cascade='all,delete-orphan',
                               order_by='Subtask.created_at')
    comments = db.relationship('TaskComment', backref='task', lazy=True, cascade='all,delete-orphan')
    history = db.relationship('TaskHistory', backref='task', lazy=True, cascade='all,delete-orphan')
    children = db.relationship('Task', backref=db.backref('parent', remote_side=[id]))
    schedule_items = db.relationship('ScheduleItem', backref='task', lazy=True)

    __table_args__ = (
        db.Index('idx_task_project_status', 'project_id', 'status'),
        db.Index('idx_task_assignee_status', 'assignee_id', 'status'),
        db.Index('idx_task_due_date', 'due_date'),
        db.Index('idx_task_created_at', 'created_at'),
    )

# ============================================
# 8. Subtask 模型
# ============================================
class Subtask(db.Model):
    __tablename__ = 'subtasks'

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

# ============================================
# 9. TaskComment 模型
# ============================================
class TaskComment(db.Model):
    __tablename__ = 'task_comments'

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    mentions = db.Column(db.JSON)  # 被 @ 的 user id 列表
    is_edited = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)

    user = db.relationship('User')

# ============================================
# 10. TaskHistory 模型
# ============================================
class TaskHistory(db.Model):
    __tablename__ = 'task_histories'

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    action = db.Column(db.String(30), nullable=False)
    changes = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User')

# ============================================
# 11. DailySchedule 模型
# ============================================
class DailySchedule(db.Model):
    __tablename__ = 'daily_schedules'

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='SET NULL'), nullable=True)

    working_hours_start = db.Column(db.String(5), nullable=False, default='09:00')
    working_hours_end = db.Column(db.String(5), nullable=False, default='18:00')

    # 統計 (分鐘 / 比率)
    total_estimated = db.Column(db.Integer, nullable=False, default=0)
    total_actual = db.Column(db.Integer, nullable=False, default=0)
    utilization = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    time_blocks = db.relationship('TimeBlock', backref='daily_schedule', lazy=True,
                                  cascade='all,delete-orphan', order_by='TimeBlock.start_time')
    items = db.relationship('ScheduleItem', backref='daily_schedule', lazy=True,
                            cascade='all,delete-orphan', order_by='ScheduleItem.start_time')
    project = db.relationship('Project', backref='daily_schedules')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'date', name='unique_user_schedule_date'),
        db.Index('idx_schedule_date', 'date'),
    )

# ============================================
# 12. TimeBlock 模型
# ============================================
class TimeBlock(db.Model):
    __tablename__ = 'time_blocks'

    id = db.Column(db.Integer, primary_key=True)
    daily_schedule_id = db.Column(db.Integer, db.ForeignKey('daily_schedules.id', ondelete='CASCADE'),
                                  nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    duration = db.Column(db.Integer, nullable=False, default=60)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    items = db.relationship('ScheduleItem', backref='time_block', lazy=True)

# ============================================
# 13. ScheduleItem 模型
# ============================================
class ScheduleItem(db.Model):
    __tablename__ = 'schedule_items'

    id = db.Column(db.Integer, primary_key=True)
    time_block_id = db.Column(db.Integer, db.ForeignKey('time_blocks.id'), nullable=False)
    daily_schedule_id = db.Column(db.Integer, db.ForeignKey('daily_schedules.id', ondelete='CASCADE'),
                                  nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey('tasks.id', ondelete='SET NULL'), nullable=True)

    type = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    duration = db.Column(db.Integer, nullable=False)
    color = db.Column(db.String(7), nullable=False, default='#3B82F6')
    status = db.Column(db.String(20), nullable=False, default='planned')
    priority = db.Column(db.String(20), nullable=False, default='medium')
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)

    estimated_time = db.Column(db.Integer)  # 分鐘
    actual_time = db.Column(db.Integer)     # 分鐘
    completion_rate = db.Column(db.Float, nullable=False, default=0.0)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index('idx_schedule_item_start', 'daily_schedule_id', 'start_time'),
    )

# ============================================
# 14. Notification 模型
# ============================================
class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type = db.Column(db.String(30), nullable=False)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    action_url = db.Column(db.String(500))
    # 'metadata' 是 SQLAlchemy 保留字, 屬性改叫 meta
    meta = db.Column('metadata', db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index('idx_notification_user_read', 'user_id', 'is_read'),
        db.Index('idx_notification_created_at', 'created_at'),
    )

# ============================================
# 15. TokenBlocklist 模型 (登出用)
# ============================================
class TokenBlocklist(db.Model):
    __tablename__ = 'token_blocklist'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True, index=True)
    token_type = db.Column(db.String(10), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
