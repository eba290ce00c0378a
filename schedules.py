from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from marshmallow import Schema, fields, validate, validates_schema, ValidationError
from models import (
    db, DailySchedule, TimeBlock, ScheduleItem,
    SCHEDULE_ITEM_TYPES, SCHEDULE_ITEM_STATUSES, TASK_PRIORITIES
)
from auth import get_current_user
from extensions import limiter
from projects import check_project_access
from tasks import check_task_access
from errors import ApiError, not_found, forbidden
from helpers import parse_date, isoformat
from scheduling import (
    is_valid_time, normalize_time, calculate_duration, working_minutes,
    generate_time_blocks, find_covering_block, find_overlapping, detect_conflicts,
    calculate_statistics, calculate_totals, find_free_slots
)
from datetime import date, timedelta
import logging

schedules_bp = Blueprint('schedules', __name__)
logger = logging.getLogger(__name__)

ITEM_COLOR = validate.Regexp(
    r'^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$',
    error='Color must be a hex value like #3B82F6'
)
MINUTES_IN_DAY = 24 * 60

# ============================================
# Input Validation Schemas
# ============================================

class TimeField(fields.Str):
    """'HH:MM' 字串, 載入時補零 ('9:00' -> '09:00')"""
    default_error_messages = {'invalid_time': 'Time must be in HH:MM format'}

    def _deserialize(self, value, attr, data, **kwargs):
        value = super()._deserialize(value, attr, data, **kwargs)
        if not is_valid_time(value):
            raise self.make_error('invalid_time')
        return normalize_time(value)


class CreateScheduleSchema(Schema):
    date = fields.Date(required=True)
    working_hours_start = TimeField()
    working_hours_end = TimeField()
    project_id = fields.Int(allow_none=True)


class UpdateScheduleSchema(Schema):
    working_hours_start = TimeField()
    working_hours_end = TimeField()
    project_id = fields.Int(allow_none=True)


class ItemFieldsSchema(Schema):
    type = fields.Str(validate=validate.OneOf(SCHEDULE_ITEM_TYPES))
    title = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(allow_none=True, validate=validate.Length(max=1000))
    start_time = TimeField()
    end_time = TimeField()
    color = fields.Str(validate=ITEM_COLOR)
    status = fields.Str(validate=validate.OneOf(SCHEDULE_ITEM_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    is_locked = fields.Bool()
    is_recurring = fields.Bool()
    estimated_time = fields.Int(allow_none=True, validate=validate.Range(min=1, max=MINUTES_IN_DAY))
    actual_time = fields.Int(allow_none=True, validate=validate.Range(min=0, max=MINUTES_IN_DAY))
    completion_rate = fields.Float(validate=validate.Range(min=0, max=1))
    task_id = fields.Int(allow_none=True)


class CreateItemSchema(ItemFieldsSchema):
    """建立排程項目驗證"""
    daily_schedule_id = fields.Int(required=True)
    type = fields.Str(required=True, validate=validate.OneOf(SCHEDULE_ITEM_TYPES))
    title = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    start_time = TimeField(required=True)
    end_time = TimeField(required=True)


class UpdateItemSchema(ItemFieldsSchema):
    @validates_schema
    def check_not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError('At least one field must be provided')


class BulkUpdateItemsSchema(Schema):
    item_ids = fields.List(fields.Int(), required=True, validate=validate.Length(min=1))
    status = fields.Str(validate=validate.OneOf(SCHEDULE_ITEM_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    completion_rate = fields.Float(validate=validate.Range(min=0, max=1))

    @validates_schema
    def check_updates(self, data, **kwargs):
        if not any(key in data for key in ('status', 'priority', 'completion_rate')):
            raise ValidationError('At least one of status, priority or completion_rate is required')


class ScheduleTaskSchema(Schema):
    date = fields.Date(required=True)
    start_time = TimeField(required=True)
    end_time = TimeField(required=True)


ITEM_FIELDS = [
    'type', 'title', 'description', 'start_time', 'end_time', 'color', 'status',
    'priority', 'is_locked', 'is_recurring', 'estimated_time', 'actual_time',
    'completion_rate', 'task_id'
]

# ============================================
# 驗證輔助
# ============================================

def load_json(schema_class):
    """讀取 JSON body 並驗證, 失敗時交給全域 ValidationError handler"""
    data = request.get_json(silent=True)
    if not data:
        raise ApiError(400, 'Request body must be JSON', 'INVALID_BODY')
    return schema_class().load(data)


def parse_schedule_date(value):
    on_date = parse_date(value)
    if on_date is None:
        raise ApiError(400, f'Invalid date: {value} (expected YYYY-MM-DD)', 'INVALID_DATE')
    return on_date


def check_working_hours(start_time, end_time):
    """工作時間: 開始 < 結束, 長度在 4 到 16 小時之間"""
    duration = calculate_duration(start_time, end_time)
    if duration <= 0:
        raise ApiError(400, 'Working hours end must be after start', 'INVALID_WORKING_HOURS')

    min_minutes = current_app.config['WORKING_HOURS_MIN_MINUTES']
    max_minutes = current_app.config['WORKING_HOURS_MAX_MINUTES']
    if duration < min_minutes or duration > max_minutes:
        raise ApiError(
            400,
            f'Working hours must be between {min_minutes // 60} and {max_minutes // 60} hours',
            'INVALID_WORKING_HOURS'
        )


def check_item_values(values):
    """
    檢查合併後的 item 數值

    1. end_time 要晚於 start_time
    2. estimated_time 不能超過 duration + 30 分鐘
    3. actual_time 不能超過 estimated_time 的兩倍
    """
    errors = {}
    duration = calculate_duration(values['start_time'], values['end_time'])
    if duration <= 0:
        errors['end_time'] = ['End time must be after start time']

    estimated = values.get('estimated_time')
    actual = values.get('actual_time')
    if estimated is not None and duration > 0 and estimated > duration + 30:
        errors['estimated_time'] = ['Estimated time cannot exceed duration by more than 30 minutes']
    if estimated is not None and actual is not None and actual > estimated * 2:
        errors['actual_time'] = ['Actual time cannot exceed twice the estimated time']

    if errors:
        raise ValidationError(errors)
    return duration


def check_no_overlap(schedule, start_time, end_time, exclude_id=None):
    overlapping = find_overlapping(schedule.items, start_time, end_time, exclude_id=exclude_id)
    if overlapping:
        titles = ', '.join(f'"{i.title}"' for i in overlapping)
        raise ApiError(409, f'Time slot conflicts with {titles}', 'SCHEDULE_CONFLICT', {
            'conflicts': [{
                'id': i.id,
                'title': i.title,
                'start_time': i.start_time,
                'end_time': i.end_time
            } for i in overlapping]
        })

# ============================================
# 資料庫輔助
# ============================================

def get_schedule(user_id, on_date):
    return DailySchedule.query.filter_by(user_id=user_id, date=on_date).first()


def create_daily_schedule(user_id, on_date, working_hours_start=None, working_hours_end=None, project_id=None):
    """建立一天的排程並產生預設 time block 格線 (只 flush)"""
    config = current_app.config
    schedule = DailySchedule(
        user_id=user_id,
        date=on_date,
        project_id=project_id,
        working_hours_start=working_hours_start or config['DEFAULT_WORKING_HOURS_START'],
        working_hours_end=working_hours_end or config['DEFAULT_WORKING_HOURS_END']
    )
    for block in generate_time_blocks(
        config['TIME_BLOCK_DAY_START'], config['TIME_BLOCK_DAY_END'], config['TIME_BLOCK_MINUTES']
    ):
        schedule.time_blocks.append(TimeBlock(**block))

    db.session.add(schedule)
    db.session.flush()
    logger.info(f"Daily schedule created for user {user_id} on {on_date.isoformat()}")
    return schedule


def get_or_create_daily_schedule(user_id, on_date):
    return get_schedule(user_id, on_date) or create_daily_schedule(user_id, on_date)


def find_or_create_time_block(schedule, start_time, end_time):
    """
    找第一個包住 item 時段的 block

    沒有的話建立一個剛好等於 item 時段的新 block
    """
    block = find_covering_block(schedule.time_blocks, start_time, end_time)
    if block is None:
        block = TimeBlock(
            start_time=start_time,
            end_time=end_time,
            duration=calculate_duration(start_time, end_time)
        )
        schedule.time_blocks.append(block)
    return block


def schedule_working_minutes(schedule):
    return working_minutes(schedule.working_hours_start, schedule.working_hours_end)


def update_schedule_statistics(schedule):
    """重新計算 total_estimated / total_actual / utilization"""
    total_estimated, total_actual, utilization = calculate_totals(
        schedule.items, schedule_working_minutes(schedule)
    )
    schedule.total_estimated = total_estimated
    schedule.total_actual = total_actual
    schedule.utilization = utilization


def get_own_schedule(schedule_id, user_id):
    schedule = db.session.get(DailySchedule, schedule_id)
    if not schedule:
        raise not_found('Daily schedule')
    if schedule.user_id != user_id:
        raise forbidden('You can only modify your own schedule')
    return schedule


def get_own_item(item_id, user_id):
    item = db.session.get(ScheduleItem, item_id)
    if not item:
        raise not_found('Schedule item')
    if item.daily_schedule.user_id != user_id:
        raise forbidden('You can only modify your own schedule')
    return item


def get_visible_task(task_id, user_id):
    has_access, task, role = check_task_access(task_id, user_id)
    if not task:
        raise not_found('Task')
    if not has_access:
        raise forbidden('You do not have access to this task')
    return task


def task_estimated_minutes(task):
    if not task.estimated_hours:
        return None
    return max(1, min(int(round(task.estimated_hours * 60)), MINUTES_IN_DAY))

# ============================================
# 序列化
# ============================================

def serialize_item(item):
    return {
        'id': item.id,
        'daily_schedule_id': item.daily_schedule_id,
        'time_block_id': item.time_block_id,
        'type': item.type,
        'title': item.title,
        'description': item.description,
        'start_time': item.start_time,
        'end_time': item.end_time,
        'duration': item.duration,
        'color': item.color,
        'status': item.status,
        'priority': item.priority,
        'is_locked': item.is_locked,
        'is_recurring': item.is_recurring,
        'estimated_time': item.estimated_time,
        'actual_time': item.actual_time,
        'completion_rate': item.completion_rate,
        'task': {
            'id': item.task.id,
            'title': item.task.title,
            'status': item.task.status,
            'due_date': isoformat(item.task.due_date)
        } if item.task else None,
        'created_at': isoformat(item.created_at),
        'updated_at': isoformat(item.updated_at)
    }


def serialize_schedule(schedule):
    return {
        'id': schedule.id,
        'date': schedule.date.isoformat(),
        'user_id': schedule.user_id,
        'project_id': schedule.project_id,
        'working_hours_start': schedule.working_hours_start,
        'working_hours_end': schedule.working_hours_end,
        'total_estimated': schedule.total_estimated,
        'total_actual': schedule.total_actual,
        'utilization': schedule.utilization,
        'time_blocks': [{
            'id': b.id,
            'start_time': b.start_time,
            'end_time': b.end_time,
            'duration': b.duration,
            'item_ids': [i.id for i in b.items]
        } for b in schedule.time_blocks],
        'items': [serialize_item(i) for i in schedule.items],
        'created_at': isoformat(schedule.created_at),
        'updated_at': isoformat(schedule.updated_at)
    }

# ============================================
# Daily schedule API
# ============================================

@schedules_bp.route('/daily/<date_str>', methods=['GET'])
@jwt_required()
def get_daily_schedule(date_str):
    """取得某一天的排程, 還沒有的話自動建立"""
    current_user = get_current_user()
    on_date = parse_schedule_date(date_str)

    schedule = get_or_create_daily_schedule(current_user.id, on_date)
    db.session.commit()

    return jsonify(serialize_schedule(schedule)), 200


@schedules_bp.route('/daily', methods=['POST'])
@jwt_required()
def create_schedule():
    current_user = get_current_user()
    result = load_json(CreateScheduleSchema)

    if get_schedule(current_user.id, result['date']):
        raise ApiError(409, 'Schedule already exists for this date', 'SCHEDULE_EXISTS')

    start = result.get('working_hours_start', current_app.config['DEFAULT_WORKING_HOURS_START'])
    end = result.get('working_hours_end', current_app.config['DEFAULT_WORKING_HOURS_END'])
    check_working_hours(start, end)

    if result.get('project_id'):
        has_access, project, role = check_project_access(result['project_id'], current_user.id)
        if not project:
            raise not_found('Project')
        if not has_access:
            raise forbidden('You are not a member of this project')

    schedule = create_daily_schedule(
        current_user.id, result['date'], start, end, result.get('project_id')
    )
    db.session.commit()

    return jsonify({
        'message': 'Schedule created successfully',
        'schedule': serialize_schedule(schedule)
    }), 201


@schedules_bp.route('/daily/<date_str>', methods=['PATCH'])
@jwt_required()
def update_schedule(date_str):
    """更新工作時間 / 專案, 檢查的是合併後的值"""
    current_user = get_current_user()
    on_date = parse_schedule_date(date_str)
    result = load_json(UpdateScheduleSchema)

    schedule = get_or_create_daily_schedule(current_user.id, on_date)

    start = result.get('working_hours_start', schedule.working_hours_start)
    end = result.get('working_hours_end', schedule.working_hours_end)
    check_working_hours(start, end)

    if result.get('project_id'):
        has_access, project, role = check_project_access(result['project_id'], current_user.id)
        if not project:
            raise not_found('Project')
        if not has_access:
            raise forbidden('You are not a member of this project')

    schedule.working_hours_start = start
    schedule.working_hours_end = end
    if 'project_id' in result:
        schedule.project_id = result['project_id']

    update_schedule_statistics(schedule)
    db.session.commit()

    logger.info(f"Schedule {schedule.id} updated by user {current_user.email}")
    return jsonify({
        'message': 'Schedule updated successfully',
        'schedule': serialize_schedule(schedule)
    }), 200


@schedules_bp.route('/range', methods=['GET'])
@jwt_required()
def get_schedule_range():
    """
    取得一段期間的排程 (最多 31 天)

    期間內還沒有排程的日子會自動建立
    """
    current_user = get_current_user()

    start_raw = request.args.get('start_date')
    end_raw = request.args.get('end_date')
    if not start_raw or not end_raw:
        raise ApiError(400, 'start_date and end_date are required', 'INVALID_DATE')

    start_date = parse_schedule_date(start_raw)
    end_date = parse_schedule_date(end_raw)
    if end_date < start_date:
        raise ApiError(400, 'end_date must not be before start_date', 'INVALID_DATE_RANGE')

    max_days = current_app.config['SCHEDULE_MAX_RANGE_DAYS']
    if (end_date - start_date).days + 1 > max_days:
        raise ApiError(400, f'Date range cannot exceed {max_days} days', 'INVALID_DATE_RANGE')

    existing = {
        s.date: s for s in DailySchedule.query.filter(
            DailySchedule.user_id == current_user.id,
            DailySchedule.date >= start_date,
            DailySchedule.date <= end_date
        ).all()
    }

    schedules = []
    current = start_date
    while current <= end_date:
        schedules.append(existing.get(current) or create_daily_schedule(current_user.id, current))
        current += timedelta(days=1)

    db.session.commit()

    return jsonify({
        'start_date': start_date.isoformat(),
        'end_date': end_date.isoformat(),
        'schedules': [serialize_schedule(s) for s in schedules]
    }), 200

# ============================================
# Schedule item API
# ============================================

@schedules_bp.route('/items', methods=['POST'])
@jwt_required()
@limiter.limit("200 per hour")
def create_schedule_item():
    """
    新增排程項目

    改進點:
    1. 只能加到自己的排程 (403)
    2. 連結的任務必須存在 (404)
    3. 時段不能和既有項目重疊 (409, 列出衝突的項目)
    4. 自動掛到包住時段的 time block, 並更新排程統計
    """
    current_user = get_current_user()
    result = load_json(CreateItemSchema)

    schedule = get_own_schedule(result['daily_schedule_id'], current_user.id)
    duration = check_item_values(result)

    if result.get('task_id'):
        get_visible_task(result['task_id'], current_user.id)

    check_no_overlap(schedule, result['start_time'], result['end_time'])

    item = ScheduleItem(
        created_by=current_user.id,
        duration=duration,
        color=result.get('color') or current_app.config['SCHEDULE_DEFAULT_COLOR'],
        **{k: v for k, v in result.items() if k in ITEM_FIELDS and k != 'color'}
    )
    item.time_block = find_or_create_time_block(schedule, item.start_time, item.end_time)
    schedule.items.append(item)

    update_schedule_statistics(schedule)
    db.session.commit()

    logger.info(f"Schedule item created: {item.title} ({item.start_time}-{item.end_time}) by user {current_user.email}")
    return jsonify({
        'message': 'Schedule item created successfully',
        'item': serialize_item(item)
    }), 201


@schedules_bp.route('/items/<int:item_id>', methods=['PATCH'])
@jwt_required()
def update_schedule_item(item_id):
    """
    更新排程項目

    鎖定的項目不能改時間 (422); 改時間時重新檢查重疊 (排除自己),
    並重新計算 duration 和 time block
    """
    current_user = get_current_user()
    result = load_json(UpdateItemSchema)
    item = get_own_item(item_id, current_user.id)
    schedule = item.daily_schedule

    start = result.get('start_time', item.start_time)
    end = result.get('end_time', item.end_time)
    time_changed = start != item.start_time or end != item.end_time

    if time_changed and item.is_locked:
        raise ApiError(422, 'Locked schedule items cannot be moved', 'ITEM_LOCKED')

    merged = {
        'start_time': start,
        'end_time': end,
        'estimated_time': result.get('estimated_time', item.estimated_time),
        'actual_time': result.get('actual_time', item.actual_time)
    }
    duration = check_item_values(merged)

    if result.get('task_id'):
        get_visible_task(result['task_id'], current_user.id)

    if time_changed:
        check_no_overlap(schedule, start, end, exclude_id=item.id)

    for field in ITEM_FIELDS:
        if field in result:
            setattr(item, field, result[field])

    if time_changed:
        item.duration = duration
        item.time_block = find_or_create_time_block(schedule, start, end)

    update_schedule_statistics(schedule)
    db.session.commit()

    return jsonify({
        'message': 'Schedule item updated successfully',
        'item': serialize_item(item)
    }), 200


@schedules_bp.route('/items/<int:item_id>', methods=['DELETE'])
@jwt_required()
def delete_schedule_item(item_id):
    current_user = get_current_user()
    item = get_own_item(item_id, current_user.id)

    if item.is_locked:
        raise ApiError(422, 'Locked schedule items cannot be deleted', 'ITEM_LOCKED')

    schedule = item.daily_schedule
    schedule.items.remove(item)
    update_schedule_statistics(schedule)
    db.session.commit()

    logger.info(f"Schedule item {item_id} deleted by user {current_user.email}")
    return jsonify({'message': 'Schedule item deleted successfully'}), 200


@schedules_bp.route('/items/bulk', methods=['PATCH'])
@jwt_required()
def bulk_update_schedule_items():
    """
    批次更新 status / priority / completion_rate

    全部 id 都要存在 (404) 且屬於自己 (403), 否則整批不更新
    """
    current_user = get_current_user()
    result = load_json(BulkUpdateItemsSchema)

    item_ids = list(dict.fromkeys(result['item_ids']))
    limit = current_app.config['SCHEDULE_BULK_LIMIT']
    if len(item_ids) > limit:
        raise ApiError(400, f'Cannot update more than {limit} items at once', 'BULK_LIMIT_EXCEEDED')

    items = ScheduleItem.query.filter(ScheduleItem.id.in_(item_ids)).all()
    found = {i.id for i in items}
    missing = [i for i in item_ids if i not in found]
    if missing:
        raise ApiError(404, 'Some schedule items were not found', 'NOT_FOUND', {'item_ids': missing})

    if any(i.daily_schedule.user_id != current_user.id for i in items):
        raise forbidden('You can only modify your own schedule')

    schedules = {}
    for item in items:
        for field in ('status', 'priority', 'completion_rate'):
            if field in result:
                setattr(item, field, result[field])
        schedules[item.daily_schedule_id] = item.daily_schedule

    for schedule in schedules.values():
        update_schedule_statistics(schedule)
    db.session.commit()

    logger.info(f"Bulk updated {len(items)} schedule items by user {current_user.email}")
    return jsonify({
        'message': f'{len(items)} schedule items updated',
        'updated': len(items),
        'items': [serialize_item(i) for i in items]
    }), 200

# ============================================
# 統計 / 衝突
# ============================================

def schedule_snapshot(user_id, on_date):
    """
    (items, working_minutes) 給統計和衝突偵測用

    沒有排程的日子視為空排程 + 預設工作時間, 不建立資料
    """
    schedule = get_schedule(user_id, on_date)
    if schedule:
        return schedule.items, schedule_working_minutes(schedule)
    config = current_app.config
    return [], working_minutes(config['DEFAULT_WORKING_HOURS_START'], config['DEFAULT_WORKING_HOURS_END'])


@schedules_bp.route('/statistics/<date_str>', methods=['GET'])
@jwt_required()
def get_schedule_statistics(date_str):
    current_user = get_current_user()
    on_date = parse_schedule_date(date_str)

    items, total_working = schedule_snapshot(current_user.id, on_date)
    return jsonify({
        'date': on_date.isoformat(),
        'statistics': calculate_statistics(items, total_working)
    }), 200


@schedules_bp.route('/conflicts/<date_str>', methods=['GET'])
@jwt_required()
def get_schedule_conflicts(date_str):
    current_user = get_current_user()
    on_date = parse_schedule_date(date_str)

    items, total_working = schedule_snapshot(current_user.id, on_date)
    conflicts = detect_conflicts(items, total_working, on_date=on_date)
    return jsonify({
        'date': on_date.isoformat(),
        'conflicts': conflicts,
        'total': len(conflicts)
    }), 200

# ============================================
# 任務排程
# ============================================

@schedules_bp.route('/tasks/<int:task_id>/schedule', methods=['POST'])
@jwt_required()
def schedule_task(task_id):
    """
    把任務排進某一天

    有父任務的任務排成 subtask 類型; 標題 / 優先度 / 預估時間沿用任務
    """
    current_user = get_current_user()
    task = get_visible_task(task_id, current_user.id)
    result = load_json(ScheduleTaskSchema)

    duration = calculate_duration(result['start_time'], result['end_time'])
    if duration <= 0:
        raise ValidationError({'end_time': ['End time must be after start time']})

    schedule = get_or_create_daily_schedule(current_user.id, result['date'])
    check_no_overlap(schedule, result['start_time'], result['end_time'])

    item = ScheduleItem(
        task_id=task.id,
        type='subtask' if task.parent_id else 'task',
        title=task.title[:255],
        description=task.description[:1000] if task.description else None,
        start_time=result['start_time'],
        end_time=result['end_time'],
        duration=duration,
        color=task.project.color if task.project and task.project.color else current_app.config['SCHEDULE_DEFAULT_COLOR'],
        priority=task.priority,
        estimated_time=task_estimated_minutes(task),
        created_by=current_user.id
    )
    item.time_block = find_or_create_time_block(schedule, item.start_time, item.end_time)
    schedule.items.append(item)

    update_schedule_statistics(schedule)
    db.session.commit()

    logger.info(f"Task {task_id} scheduled on {result['date'].isoformat()} by user {current_user.email}")
    return jsonify({
        'message': 'Task scheduled successfully',
        'item': serialize_item(item)
    }), 201


@schedules_bp.route('/suggestions/<int:task_id>', methods=['GET'])
@jwt_required()
def get_schedule_suggestions(task_id):
    """
    找接下來幾天可以放這個任務的空檔

    長度 = 任務預估時間 (沒有的話 60 分鐘), 只看工作時間內
    """
    current_user = get_current_user()
    task = get_visible_task(task_id, current_user.id)

    date_raw = request.args.get('date')
    start_date = parse_schedule_date(date_raw) if date_raw else date.today()

    days = request.args.get('days', current_app.config['SUGGESTION_DEFAULT_DAYS'], type=int)
    days = max(1, min(days, current_app.config['SCHEDULE_MAX_RANGE_DAYS']))

    duration = task_estimated_minutes(task) or 60
    config = current_app.config

    suggestions = []
    for offset in range(days):
        on_date = start_date + timedelta(days=offset)
        schedule = get_schedule(current_user.id, on_date)
        if schedule:
            items = schedule.items
            work_start, work_end = schedule.working_hours_start, schedule.working_hours_end
        else:
            items = []
            work_start = config['DEFAULT_WORKING_HOURS_START']
            work_end = config['DEFAULT_WORKING_HOURS_END']

        slots = find_free_slots(items, work_start, work_end, duration)
        if slots:
            suggestions.append({'date': on_date.isoformat(), 'slots': slots})

    return jsonify({
        'task_id': task.id,
        'duration': duration,
        'suggestions': suggestions
    }), 200
