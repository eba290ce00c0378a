"""
排程的時間計算 (純函數, 不碰資料庫)

時間一律是 'HH:MM' (24 小時制) 字串, 內部換算成從 00:00 起算的分鐘數。
區間都是半開區間 [start, end), 所以 09:00-10:00 和 10:00-11:00 不算重疊。
"""
import re

TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$')

TASK_ITEM_TYPES = ('task', 'subtask')
FOCUS_ITEM_TYPES = ('focus', 'task')
INACTIVE_ITEM_STATUSES = ('cancelled',)

# ============================================
# 時間換算
# ============================================

def is_valid_time(value):
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def time_to_minutes(value):
    """'HH:MM' -> 分鐘數, 格式錯誤丟 ValueError"""
    match = TIME_PATTERN.match(value or '')
    if not match:
        raise ValueError(f"Invalid time format: {value!r} (expected HH:MM)")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes):
    """分鐘數 -> 'HH:MM'"""
    if minutes < 0 or minutes >= 24 * 60:
        raise ValueError(f"Minutes out of range: {minutes}")
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def normalize_time(value):
    """'9:05' -> '09:05', 讓字串比較和分鐘比較結果一致"""
    return minutes_to_time(time_to_minutes(value))


def calculate_duration(start_time, end_time):
    """結束減開始 (分鐘), 結束時間早於開始時會是負數"""
    return time_to_minutes(end_time) - time_to_minutes(start_time)


def check_time_overlap(start1, end1, start2, end2):
    """兩個時間區間是否重疊 (首尾相接不算)"""
    s1, e1 = time_to_minutes(start1), time_to_minutes(end1)
    s2, e2 = time_to_minutes(start2), time_to_minutes(end2)
    return s1 < e2 and s2 < e1


def working_minutes(start_time, end_time):
    return max(calculate_duration(start_time, end_time), 0)

# ============================================
# Time blocks
# ============================================

def generate_time_blocks(day_start='06:00', day_end='22:00', block_minutes=60):
    """
    產生預設的 time block 格線

    Returns:
        list of dict: [{'start_time', 'end_time', 'duration'}, ...]
    """
    blocks = []
    current = time_to_minutes(day_start)
    end = time_to_minutes(day_end)

    while current + block_minutes <= end:
        blocks.append({
            'start_time': minutes_to_time(current),
            'end_time': minutes_to_time(current + block_minutes),
            'duration': block_minutes
        })
        current += block_minutes

    return blocks


def find_covering_block(blocks, start_time, end_time):
    """
    找第一個完整包住 [start_time, end_time) 的 block

    blocks 可以是 ORM 物件或 dict, 找不到回傳 None
    """
    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)

    def _get(block, name):
        return block[name] if isinstance(block, dict) else getattr(block, name)

    ordered = sorted(blocks, key=lambda b: time_to_minutes(_get(b, 'start_time')))
    for block in ordered:
        if time_to_minutes(_get(block, 'start_time')) <= start and time_to_minutes(_get(block, 'end_time')) >= end:
            return block
    return None

# ============================================
# 衝突偵測
# ============================================

def find_overlapping(items, start_time, end_time, exclude_id=None):
    """回傳與 [start_time, end_time) 重疊的 items (排除 exclude_id)"""
    return [
        item for item in items
        if item.id != exclude_id and check_time_overlap(start_time, end_time, item.start_time, item.end_time)
    ]


def detect_conflicts(items, working_minutes_total=None, on_date=None):
    """
    偵測一天內的排程衝突

    1. overlap: 兩兩比較 (O(n^2)), 每一對重疊的 item 產生一筆
    2. deadline: 連結的任務在排程日之前就已到期且 item 尚未完成
    3. overbooked: 排程總時數超過工作時數 (最多一筆)
    """
    conflicts = []
    ordered = sorted(items, key=lambda i: (time_to_minutes(i.start_time), i.id or 0))

    for index, first in enumerate(ordered):
        for second in ordered[index + 1:]:
            if check_time_overlap(first.start_time, first.end_time, second.start_time, second.end_time):
                conflicts.append({
                    'id': f'conflict-{first.id}-{second.id}',
                    'type': 'overlap',
                    'items': [first.id, second.id],
                    'message': f'"{first.title}" and "{second.title}" overlap',
                    'severity': 'medium'
                })

    if on_date is not None:
        for item in ordered:
            task = getattr(item, 'task', None)
            due_date = getattr(task, 'due_date', None)
            if due_date is None or item.status == 'completed':
                continue
            if due_date.date() < on_date:
                conflicts.append({
                    'id': f'deadline-{item.id}',
                    'type': 'deadline',
                    'items': [item.id],
                    'message': f'"{item.title}" is scheduled after its task deadline ({due_date.date().isoformat()})',
                    'severity': 'high'
                })

    if working_minutes_total:
        scheduled = sum(i.duration for i in ordered if i.status not in INACTIVE_ITEM_STATUSES)
        if scheduled > working_minutes_total:
            conflicts.append({
                'id': 'overbooked',
                'type': 'overbooked',
                'items': [i.id for i in ordered if i.status not in INACTIVE_ITEM_STATUSES],
                'message': f'Scheduled {scheduled} minutes exceed {working_minutes_total} working minutes',
                'severity': 'low'
            })

    return conflicts

# ============================================
# 統計
# ============================================

def calculate_statistics(items, working_minutes_total):
    """
    一天的排程統計

    時數四捨五入到小數第一位, 比率是 0-100 的整數
    """
    task_items = [i for i in items if i.type in TASK_ITEM_TYPES]
    completed_tasks = [i for i in task_items if i.status == 'completed']

    total_minutes = sum(i.duration for i in items)
    break_minutes = sum(i.duration for i in items if i.type == 'break')
    meeting_minutes = sum(i.duration for i in items if i.type == 'meeting')
    focus_minutes = sum(i.duration for i in items if i.type in FOCUS_ITEM_TYPES)
    productive_minutes = total_minutes - break_minutes

    utilization_rate = round(productive_minutes / working_minutes_total * 100) if working_minutes_total > 0 else 0
    completion_rate = round(len(completed_tasks) / len(task_items) * 100) if task_items else 0
    overtime_minutes = max(0, total_minutes - working_minutes_total)

    return {
        'total_tasks': len(task_items),
        'completed_tasks': len(completed_tasks),
        'total_hours': round(total_minutes / 60, 1),
        'productive_hours': round(productive_minutes / 60, 1),
        'break_hours': round(break_minutes / 60, 1),
        'meeting_hours': round(meeting_minutes / 60, 1),
        'focus_hours': round(focus_minutes / 60, 1),
        'working_hours': round(working_minutes_total / 60, 1),
        'utilization_rate': utilization_rate,
        'completion_rate': completion_rate,
        'overtime_hours': round(overtime_minutes / 60, 1)
    }


def calculate_totals(items, working_minutes_total):
    """DailySchedule 上快取的 total_estimated / total_actual / utilization"""
    total_estimated = sum(i.estimated_time or 0 for i in items)
    total_actual = sum(i.actual_time or 0 for i in items)
    utilization = total_estimated / working_minutes_total if working_minutes_total > 0 else 0.0
    return total_estimated, total_actual, round(utilization, 4)

# ============================================
# 空檔建議
# ============================================

def find_free_slots(items, work_start, work_end, duration):
    """
    在工作時間內找出長度 >= duration 分鐘的空檔

    和 find_overlapping 一樣, 已取消的 item 也佔時間
    """
    window_start = time_to_minutes(work_start)
    window_end = time_to_minutes(work_end)

    busy = sorted(
        (time_to_minutes(i.start_time), time_to_minutes(i.end_time))
        for i in items
    )

    slots = []
    cursor = window_start
    for start, end in busy:
        if end <= cursor:
            continue
        if start >= window_end:
            break
        if start - cursor >= duration:
            slots.append((cursor, start))
        cursor = max(cursor, end)

    if window_end - cursor >= duration:
        slots.append((cursor, window_end))

    return [{
        'start_time': minutes_to_time(start),
        'end_time': minutes_to_time(start + duration),
        'available_until': minutes_to_time(end),
        'duration': duration
    } for start, end in slots]
